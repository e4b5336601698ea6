"""Domain error codes for the reservation and booking core."""

from enum import Enum
from typing import Any, Iterable


class ErrorCode(Enum):
    """Domain error codes."""

    SCHEDULE_NOT_FOUND = "SCHEDULE_NOT_FOUND"
    SEAT_NOT_FOUND = "SEAT_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    SEAT_CONFLICT = "SEAT_CONFLICT"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_SEAT_SELECTION = "INVALID_SEAT_SELECTION"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    SEAT_NO_LONGER_HELD = "SEAT_NO_LONGER_HELD"
    PROMOTION_INVALID = "PROMOTION_INVALID"
    BOOKING_WINDOW_CLOSED = "BOOKING_WINDOW_CLOSED"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    SEAT_MAP_IN_USE = "SEAT_MAP_IN_USE"


class DomainError(Exception):
    """Base domain error with code, user-safe message and structured details."""

    code: ErrorCode = ErrorCode.INVALID_TRANSITION

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """Referenced schedule, seat or booking does not exist."""


class ScheduleNotFound(NotFoundError):
    code = ErrorCode.SCHEDULE_NOT_FOUND

    def __init__(self, schedule_id: int) -> None:
        super().__init__(f"Schedule {schedule_id} not found", schedule_id=schedule_id)
        self.schedule_id = schedule_id


class SeatNotFound(NotFoundError):
    code = ErrorCode.SEAT_NOT_FOUND

    def __init__(self, schedule_id: int, seat_id: str) -> None:
        super().__init__(
            f"Seat {seat_id} not found in schedule {schedule_id}",
            schedule_id=schedule_id,
            seat_id=seat_id,
        )
        self.schedule_id = schedule_id
        self.seat_id = seat_id


class BookingNotFound(NotFoundError):
    code = ErrorCode.BOOKING_NOT_FOUND

    def __init__(self, booking_ref: int | str) -> None:
        super().__init__(f"Booking {booking_ref} not found", booking=booking_ref)
        self.booking_ref = booking_ref


class SeatConflict(DomainError):
    """Seats are held or sold by another session. Caller should re-select."""

    code = ErrorCode.SEAT_CONFLICT

    def __init__(self, schedule_id: int, seat_ids: Iterable[str]) -> None:
        self.seat_ids = sorted(seat_ids)
        super().__init__(
            f"Seats not available: {', '.join(self.seat_ids)}",
            schedule_id=schedule_id,
            seat_ids=self.seat_ids,
        )
        self.schedule_id = schedule_id


class SeatMapInUse(DomainError):
    """A seat map with held or sold seats cannot be regenerated."""

    code = ErrorCode.SEAT_MAP_IN_USE

    def __init__(self, schedule_id: int, seat_ids: Iterable[str]) -> None:
        self.seat_ids = sorted(seat_ids)
        super().__init__(
            f"Schedule {schedule_id} has held or sold seats; its seat map cannot be regenerated",
            schedule_id=schedule_id,
            seat_ids=self.seat_ids,
        )
        self.schedule_id = schedule_id


class SessionExpired(DomainError):
    """The hold lapsed or never existed. Caller must reserve again."""

    code = ErrorCode.SESSION_EXPIRED

    def __init__(self, session_id: str) -> None:
        super().__init__("Reservation session has expired", session_id=session_id)
        self.session_id = session_id


class InvalidSeatSelection(DomainError):
    code = ErrorCode.INVALID_SEAT_SELECTION


class InvalidTransition(DomainError):
    """Booking state machine misuse. Surfaced, never retried."""

    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, from_status: str, to_status: str, reason: str | None = None) -> None:
        message = f"Invalid booking transition: {from_status} -> {to_status}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, from_status=from_status, to_status=to_status)
        self.from_status = from_status
        self.to_status = to_status


class SeatNoLongerHeld(DomainError):
    """The hold lapsed between payment and seat confirmation."""

    code = ErrorCode.SEAT_NO_LONGER_HELD

    def __init__(self, session_id: str, seat_ids: Iterable[str]) -> None:
        self.seat_ids = sorted(seat_ids)
        super().__init__(
            "Seats are no longer held for this checkout, please restart",
            session_id=session_id,
            seat_ids=self.seat_ids,
        )
        self.session_id = session_id


class PromotionInvalid(DomainError):
    code = ErrorCode.PROMOTION_INVALID

    def __init__(self, code: str, reason: str) -> None:
        super().__init__(reason, promotion_code=code)
        self.promotion_code = code
        self.reason = reason


class BookingWindowClosed(DomainError):
    code = ErrorCode.BOOKING_WINDOW_CLOSED

    def __init__(self, schedule_id: int | None, reason: str, minutes_elapsed: int) -> None:
        super().__init__(reason, schedule_id=schedule_id, minutes_elapsed=minutes_elapsed)
        self.schedule_id = schedule_id
        self.minutes_elapsed = minutes_elapsed


class PaymentDeclined(DomainError):
    """Capture did not succeed; the booking stays PENDING while the hold lives."""

    code = ErrorCode.PAYMENT_DECLINED

    def __init__(self, booking_id: int, reason: str | None = None) -> None:
        super().__init__(reason or "Payment was declined", booking_id=booking_id)
        self.booking_id = booking_id
