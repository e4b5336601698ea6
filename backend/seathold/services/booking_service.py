"""
Booking lifecycle.

STATE MACHINE
=============

  PENDING ──payment captured──▶ CONFIRMED ──show elapsed──▶ COMPLETED
     │                             │  │
     └──hold lapsed──▶ EXPIRED     │  └──show passed, refund asked──▶ REFUND_REQUESTED ──approved──▶ REFUNDED
                                   └──more than 24h before show──▶ CANCELLED

Every other move raises InvalidTransition.

CHECKOUT ORDER
==============

  1. The reservation session must be live and the booking window open
  2. A PENDING booking is written with the priced seats
  3. Payment is captured with no lock held
  4. The hold is converted RESERVED -> SOLD under the schedule lock; if the
     hold lapsed during capture this fails with SeatNoLongerHeld, the booking
     becomes EXPIRED and the captured payment is marked REFUND_PENDING
  5. Only then is the booking CONFIRMED

A confirmed booking therefore never points at seats a concurrent expiry
handed to someone else.
"""

import dataclasses
from datetime import datetime, timedelta
from decimal import Decimal

from seathold.core.clock import Clock, utcnow
from seathold.core.logging import get_logger
from seathold.core.metrics import record_booking_transition, record_payment_capture
from seathold.domain.errors import InvalidTransition, PaymentDeclined, SeatNoLongerHeld
from seathold.domain.models import (
    Booking,
    BookingStatus,
    CustomerContact,
    PaymentResult,
    PaymentStatus,
    PricingSummary,
    ReservationSession,
    ScheduleInfo,
    SeatBooking,
)
from seathold.services.booking_window import BookingWindowValidator
from seathold.services.notification_service import Notifier
from seathold.services.pricing_service import PricingService
from seathold.services.reservation_service import ReservationManager
from seathold.stores.interfaces import BookingStore, PaymentGateway, ScheduleProvider, SeatMapStore
from seathold.stores.memory import row_sort_key

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.EXPIRED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.REFUND_REQUESTED,
        BookingStatus.COMPLETED,
    }),
    BookingStatus.REFUND_REQUESTED: frozenset({BookingStatus.REFUNDED}),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(booking: Booking, target: BookingStatus, now: datetime, **changes) -> Booking:
    """Return the booking moved to target, or raise InvalidTransition."""
    if not can_transition(booking.status, target):
        raise InvalidTransition(booking.status.value, target.value)
    return dataclasses.replace(booking, status=target, updated_at=now, **changes)


class BookingService:

    def __init__(
        self,
        bookings: BookingStore,
        schedules: ScheduleProvider,
        seat_store: SeatMapStore,
        reservations: ReservationManager,
        pricing: PricingService,
        window: BookingWindowValidator,
        payments: PaymentGateway,
        notifier: Notifier,
        cancellation_cutoff_hours: int = 24,
        clock: Clock = utcnow,
    ) -> None:
        self._bookings = bookings
        self._schedules = schedules
        self._seats = seat_store
        self._reservations = reservations
        self._pricing = pricing
        self._window = window
        self._payments = payments
        self._notifier = notifier
        self._cutoff = timedelta(hours=cancellation_cutoff_hours)
        self._clock = clock
        reservations.add_expiry_listener(self._expire_pending_bookings)
        reservations.add_release_listener(self._expire_pending_bookings)

    # -- reads ---------------------------------------------------------------

    async def get(self, booking_id: int) -> Booking:
        return await self._bookings.get(booking_id)

    async def get_by_number(self, booking_number: str) -> Booking:
        return await self._bookings.get_by_number(booking_number)

    async def list_for_schedule(self, schedule_id: int) -> list[Booking]:
        return await self._bookings.list_for_schedule(schedule_id)

    def _show_started(self, schedule: ScheduleInfo, now: datetime) -> bool:
        return now >= self._window.show_start(schedule)

    async def effective_status(self, booking: Booking) -> BookingStatus:
        """CONFIRMED bookings read as COMPLETED once the show has started."""
        if booking.status != BookingStatus.CONFIRMED:
            return booking.status
        schedule = await self._schedules.get_schedule(booking.schedule_id)
        if self._show_started(schedule, self._clock()):
            return BookingStatus.COMPLETED
        return booking.status

    # -- pricing -------------------------------------------------------------

    async def quote(self, session_id: str, promotion_code: str | None = None) -> PricingSummary:
        """Price a live hold.

        Raises:
            SessionExpired: The hold is not live.
            PromotionInvalid: The promotion code cannot be used.
        """
        session = await self._reservations.get_session(session_id)
        schedule = await self._schedules.get_schedule(session.schedule_id)
        seats = await self._held_seats(session)
        return await self._pricing.quote(seats, schedule.base_price, promotion_code, schedule.id)

    async def _held_seats(self, session: ReservationSession):
        seats = [await self._seats.get_seat(session.schedule_id, seat_id) for seat_id in session.seat_ids]
        return sorted(seats, key=lambda s: (row_sort_key(s.row), s.number))

    # -- checkout ------------------------------------------------------------

    async def checkout(
        self,
        session_id: str,
        customer: CustomerContact,
        payment_method_id: str,
        promotion_code: str | None = None,
    ) -> Booking:
        """Turn a live hold into a CONFIRMED booking.

        Raises:
            SessionExpired: The hold is not live.
            BookingWindowClosed: The show can no longer be booked.
            PromotionInvalid: The promotion code cannot be used.
            PaymentDeclined: Capture failed; the booking stays PENDING.
            SeatNoLongerHeld: The hold lapsed during capture; the booking is EXPIRED.
        """
        session = await self._reservations.get_session(session_id)
        schedule = await self._schedules.get_schedule(session.schedule_id)
        self._window.ensure_open(schedule)

        seats = await self._held_seats(session)
        summary = await self._pricing.quote(seats, schedule.base_price, promotion_code, schedule.id)
        booking = await self._pending_booking(session, seats, summary, customer)

        payment = await self._capture(booking, payment_method_id)
        if not payment.success:
            booking = await self._bookings.save(
                dataclasses.replace(booking, payment_status=PaymentStatus.FAILED, updated_at=self._clock())
            )
            logger.warning(
                "payment_declined",
                booking_id=booking.id,
                booking_number=booking.booking_number,
                reason=payment.message,
            )
            await self._notifier.notify(
                "payment_failed",
                booking_id=booking.id,
                booking_number=booking.booking_number,
                reason=payment.message,
            )
            raise PaymentDeclined(booking.id, payment.message)

        try:
            await self._reservations.commit_sold(session_id)
        except SeatNoLongerHeld:
            await self._expire_after_capture(booking.id, payment)
            raise

        confirmed = transition(
            booking,
            BookingStatus.CONFIRMED,
            self._clock(),
            payment_status=PaymentStatus.COMPLETED,
            transaction_id=payment.transaction_id,
        )
        confirmed = await self._bookings.save(confirmed)
        if summary.promotion_code:
            await self._pricing.record_promotion_use(summary.promotion_code)
        sold = await self._schedules.adjust_sold_seats(schedule.id, len(confirmed.seats))
        await self._record_transition(confirmed, BookingStatus.PENDING, sold_seats=sold)
        return confirmed

    async def _pending_booking(
        self,
        session: ReservationSession,
        seats,
        summary: PricingSummary,
        customer: CustomerContact,
    ) -> Booking:
        now = self._clock()
        fields = dict(
            seats=tuple(
                SeatBooking(
                    seat_id=seat.seat_id,
                    row=seat.row,
                    number=seat.number,
                    category=seat.category,
                    price=summary.seat_prices[seat.seat_id],
                )
                for seat in seats
            ),
            subtotal=summary.subtotal,
            fee=summary.fee,
            tax=summary.tax,
            discount=summary.discount,
            total_amount=summary.total,
            customer=customer,
            promotion_code=summary.promotion_code,
            updated_at=now,
        )

        # A retried checkout after a declined payment reuses its booking,
        # unless seats were deselected in between
        seat_ids = [seat.seat_id for seat in seats]
        for pending in await self._bookings.find_pending_for_session(session.session_id):
            if pending.seat_ids == seat_ids:
                return await self._bookings.save(
                    dataclasses.replace(pending, payment_status=PaymentStatus.PENDING, **fields)
                )
            stale = await self._bookings.save(transition(pending, BookingStatus.EXPIRED, now))
            await self._record_transition(stale, BookingStatus.PENDING)

        booking = await self._bookings.add(
            Booking(
                schedule_id=session.schedule_id,
                session_id=session.session_id,
                created_at=now,
                **fields,
            )
        )
        logger.info(
            "booking_created",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            schedule_id=booking.schedule_id,
            seat_ids=booking.seat_ids,
            total=str(booking.total_amount),
        )
        return booking

    async def _capture(self, booking: Booking, payment_method_id: str) -> PaymentResult:
        if booking.total_amount <= Decimal("0"):
            # Fully discounted: nothing to capture
            return PaymentResult(success=True, message="No payment required")
        result = await self._payments.capture(booking.id, payment_method_id, booking.total_amount)
        record_payment_capture(result.success)
        return result

    async def _expire_after_capture(self, booking_id: int, payment: PaymentResult) -> None:
        booking = await self._bookings.get(booking_id)
        changes = {
            "payment_status": (
                PaymentStatus.REFUND_PENDING if booking.total_amount > Decimal("0") else booking.payment_status
            ),
            "transaction_id": payment.transaction_id,
        }
        if booking.status == BookingStatus.PENDING:
            booking = transition(booking, BookingStatus.EXPIRED, self._clock(), **changes)
            previous = BookingStatus.PENDING
        else:
            # A hold listener got there first
            booking = dataclasses.replace(booking, updated_at=self._clock(), **changes)
            previous = None
        booking = await self._bookings.save(booking)
        logger.error(
            "hold_lapsed_after_capture",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            transaction_id=payment.transaction_id,
        )
        if previous is not None:
            await self._record_transition(booking, previous)

    async def _expire_pending_bookings(self, session: ReservationSession) -> None:
        """A checkout cannot complete once its hold is gone."""
        for pending in await self._bookings.find_pending_for_session(session.session_id):
            expired = await self._bookings.save(transition(pending, BookingStatus.EXPIRED, self._clock()))
            await self._record_transition(expired, BookingStatus.PENDING)

    # -- post-purchase transitions -------------------------------------------

    async def cancel(self, booking_id: int) -> Booking:
        """Cancel a confirmed booking more than the cutoff before the show.

        Raises:
            InvalidTransition: Wrong state or too close to the show.
        """
        booking = await self._bookings.get(booking_id)
        schedule = await self._schedules.get_schedule(booking.schedule_id)
        now = self._clock()
        current = await self.effective_status(booking)
        if current != booking.status:
            raise InvalidTransition(current.value, BookingStatus.CANCELLED.value, "the show has already started")
        if not can_transition(booking.status, BookingStatus.CANCELLED):
            raise InvalidTransition(booking.status.value, BookingStatus.CANCELLED.value)
        if self._window.show_start(schedule) - now <= self._cutoff:
            raise InvalidTransition(
                booking.status.value,
                BookingStatus.CANCELLED.value,
                f"cancellation closes {int(self._cutoff.total_seconds() // 3600)} hours before the show",
            )

        payment_status = (
            PaymentStatus.REFUND_PENDING
            if booking.payment_status == PaymentStatus.COMPLETED
            else booking.payment_status
        )
        cancelled = await self._bookings.save(
            transition(booking, BookingStatus.CANCELLED, now, payment_status=payment_status)
        )
        sold = await self._return_seats(cancelled)
        await self._record_transition(cancelled, BookingStatus.CONFIRMED, sold_seats=sold)
        return cancelled

    async def request_refund(self, booking_id: int) -> Booking:
        """Ask for a refund of a confirmed booking once the show has passed.

        Raises:
            InvalidTransition: Wrong state or the show has not happened yet.
        """
        booking = await self._bookings.get(booking_id)
        if not can_transition(booking.status, BookingStatus.REFUND_REQUESTED):
            raise InvalidTransition(booking.status.value, BookingStatus.REFUND_REQUESTED.value)
        schedule = await self._schedules.get_schedule(booking.schedule_id)
        now = self._clock()
        if not self._show_started(schedule, now):
            raise InvalidTransition(
                booking.status.value,
                BookingStatus.REFUND_REQUESTED.value,
                "refunds can only be requested after the show date",
            )
        requested = await self._bookings.save(transition(booking, BookingStatus.REFUND_REQUESTED, now))
        await self._record_transition(requested, BookingStatus.CONFIRMED)
        return requested

    async def approve_refund(self, booking_id: int) -> Booking:
        booking = await self._bookings.get(booking_id)
        refunded = await self._bookings.save(
            transition(booking, BookingStatus.REFUNDED, self._clock(), payment_status=PaymentStatus.REFUNDED)
        )
        sold = await self._return_seats(refunded)
        await self._record_transition(refunded, BookingStatus.REFUND_REQUESTED, sold_seats=sold)
        return refunded

    async def complete(self, booking_id: int) -> Booking:
        """Persist COMPLETED for a confirmed booking whose show has started."""
        booking = await self._bookings.get(booking_id)
        if await self.effective_status(booking) != BookingStatus.COMPLETED or booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(booking.status.value, BookingStatus.COMPLETED.value, "the show has not started")
        completed = await self._bookings.save(transition(booking, BookingStatus.COMPLETED, self._clock()))
        await self._record_transition(completed, BookingStatus.CONFIRMED)
        return completed

    async def _return_seats(self, booking: Booking) -> int:
        released = await self._reservations.release_sold(booking.schedule_id, booking.seat_ids)
        return await self._schedules.adjust_sold_seats(booking.schedule_id, -len(released))

    async def _record_transition(self, booking: Booking, previous: BookingStatus, **extra) -> None:
        record_booking_transition(booking.status.value)
        logger.info(
            "booking_status_changed",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            from_status=previous.value,
            to_status=booking.status.value,
            payment_status=booking.payment_status.value,
            **extra,
        )
        await self._notifier.notify(
            "booking_status_changed",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            schedule_id=booking.schedule_id,
            from_status=previous.value,
            to_status=booking.status.value,
        )
