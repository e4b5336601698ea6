"""Domain models for seat inventory, holds, bookings and promotions.

These are plain immutable objects; stores hand out copies and services
produce new versions with ``dataclasses.replace``. ORM tables live in
seathold/models (persistence layer).
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable


class SeatCategory(str, enum.Enum):
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"
    VIP = "VIP"


class SeatStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    DISABLED = "DISABLED"
    MAINTENANCE = "MAINTENANCE"
    # Client-local overlay only, never persisted
    SELECTED = "SELECTED"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUND_PENDING = "REFUND_PENDING"
    REFUNDED = "REFUNDED"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    BUY_X_GET_Y = "BUY_X_GET_Y"


class PromotionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class Seat:
    """One seat of a schedule's seat map.

    ``seat_id`` is the row label followed by the seat number ("A1") and is
    unique within a schedule. ``price`` is None when the seat has no explicit
    price and is priced from the schedule base price by category.
    A RESERVED seat carries its holder in ``held_by`` and the hold deadline
    in ``held_until``.
    """

    seat_id: str
    row: str
    number: int
    category: SeatCategory = SeatCategory.STANDARD
    status: SeatStatus = SeatStatus.AVAILABLE
    price: Decimal | None = None
    held_by: str | None = None
    held_until: datetime | None = None

    @property
    def is_available(self) -> bool:
        return self.status == SeatStatus.AVAILABLE

    def hold_lapsed(self, now: datetime) -> bool:
        return self.held_until is None or self.held_until <= now

    def claimable_by(self, owners: Iterable[str], now: datetime) -> bool:
        """Whether a hold for one of owners may be written over this seat."""
        if self.status == SeatStatus.AVAILABLE:
            return True
        if self.status != SeatStatus.RESERVED:
            return False
        return self.held_by in set(owners) or self.hold_lapsed(now)


@dataclass(frozen=True)
class SeatMap:
    """Seats of one schedule grouped by row, plus map metadata."""

    schedule_id: int
    rows: tuple[tuple[Seat, ...], ...]
    expected_total: int
    version: int = 0

    @property
    def seats(self) -> list[Seat]:
        return [seat for row in self.rows for seat in row]

    def seat_count(self) -> int:
        return sum(len(row) for row in self.rows)


@dataclass(frozen=True)
class ScheduleInfo:
    """Snapshot of a show schedule as served by the schedule provider."""

    id: int
    base_price: Decimal
    venue: str
    seat_total: int
    show_date: date
    show_time: time
    show_type: str
    sold_seats: int = 0


@dataclass(frozen=True)
class ReservationSession:
    """One shopper's current hold set for one schedule."""

    session_id: str
    schedule_id: int
    seat_ids: frozenset[str]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def seconds_remaining(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))


@dataclass(frozen=True)
class CustomerContact:
    name: str
    email: str
    phone: str | None = None


@dataclass(frozen=True)
class SeatBooking:
    seat_id: str
    row: str
    number: int
    category: SeatCategory
    price: Decimal


@dataclass(frozen=True)
class Booking:
    """Durable record of a purchase of one or more seats of a schedule."""

    schedule_id: int
    session_id: str
    seats: tuple[SeatBooking, ...]
    subtotal: Decimal
    fee: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal
    customer: CustomerContact
    created_at: datetime
    updated_at: datetime
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    id: int | None = None
    booking_number: str | None = None
    promotion_code: str | None = None
    transaction_id: str | None = None

    @property
    def seat_ids(self) -> list[str]:
        return [seat.seat_id for seat in self.seats]


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    transaction_id: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class Promotion:
    """Discount code. Validity and discount math live with the promotion data."""

    code: str
    discount_type: DiscountType
    value: Decimal
    start_date: date
    end_date: date
    max_uses: int
    current_uses: int = 0
    status: PromotionStatus = PromotionStatus.ACTIVE
    min_purchase_amount: Decimal = Decimal("0")
    schedule_id: int | None = None

    def rejection_reason(self, today: date, amount: Decimal, schedule_id: int | None = None) -> str | None:
        """Return why the code cannot be used, or None if it can."""
        if self.status != PromotionStatus.ACTIVE:
            return f"Promotion {self.code} is {self.status.value.lower()}"
        if today < self.start_date:
            return f"Promotion {self.code} is not active until {self.start_date.isoformat()}"
        if today > self.end_date:
            return f"Promotion {self.code} expired on {self.end_date.isoformat()}"
        if self.current_uses >= self.max_uses:
            return f"Promotion {self.code} has reached its usage limit"
        if self.schedule_id is not None and schedule_id is not None and self.schedule_id != schedule_id:
            return f"Promotion {self.code} does not apply to this show"
        if amount < self.min_purchase_amount:
            return f"Promotion {self.code} requires a minimum purchase of {self.min_purchase_amount}"
        return None

    def calculate_discount(self, amount: Decimal, seat_prices: list[Decimal] | None = None) -> Decimal:
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = amount * self.value / Decimal("100")
        elif self.discount_type == DiscountType.FIXED_AMOUNT:
            discount = self.value
        else:
            # Buy X, get the cheapest seat of every X+1 free
            prices = sorted(seat_prices or [])
            group = int(self.value) + 1
            free_seats = len(prices) // group if group > 1 else 0
            discount = sum(prices[:free_seats], Decimal("0"))
        return min(max(discount, Decimal("0")), amount)


@dataclass(frozen=True)
class PricingSummary:
    subtotal: Decimal
    fee: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    promotion_code: str | None = None
    seat_prices: dict[str, Decimal] = field(default_factory=dict)
