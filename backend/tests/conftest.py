"""
Pytest fixtures: frozen clock, in-memory core, fake payment gateway and an
HTTP client bound to an app built around that core.

Schedule 1 is the two-seat movie from the pricing scenario (A1 STANDARD,
A2 VIP, base price 250). Schedule 2 is a 20-seat concert generated from a
five-seats-per-row layout.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from seathold.container import BookingCore, build_core
from seathold.core.clock import FrozenClock
from seathold.core.config import Settings
from seathold.domain.models import (
    CustomerContact,
    DiscountType,
    PaymentResult,
    Promotion,
    ScheduleInfo,
    Seat,
    SeatCategory,
)
from seathold.main import create_app
from seathold.services.interfaces.local_seat_gate import LocalSeatGate
from seathold.services.seat_map_service import VenueLayout
from seathold.stores.interfaces import PaymentGateway
from seathold.stores.memory import (
    InMemoryPromotionStore,
    InMemoryScheduleProvider,
    RecordingNotificationSink,
)

SHOW_DATE = date(2026, 11, 20)
SHOW_TIME = time(19, 0)
SHOW_START = datetime(2026, 11, 20, 19, 0, tzinfo=timezone.utc)
# Well ahead of the show: checkout, cancellation and holds all allowed
NOW = datetime(2026, 11, 10, 12, 0, tzinfo=timezone.utc)

MOVIE_ID = 1
CONCERT_ID = 2


class FakePaymentGateway(PaymentGateway):
    """Records captures; can decline or run a hook while "waiting" on the bank."""

    def __init__(self) -> None:
        self.captures: list[tuple[int, str, Decimal]] = []
        self.decline = False
        self.during_capture = None

    async def capture(self, booking_id: int, payment_method_id: str, amount: Decimal) -> PaymentResult:
        self.captures.append((booking_id, payment_method_id, amount))
        if self.during_capture is not None:
            await self.during_capture()
        if self.decline:
            return PaymentResult(success=False, message="Card declined")
        return PaymentResult(success=True, transaction_id=f"txn_{booking_id}_{len(self.captures)}")


def movie_schedule(**overrides) -> ScheduleInfo:
    fields = dict(
        id=MOVIE_ID,
        base_price=Decimal("250"),
        venue="Screen 1",
        seat_total=2,
        show_date=SHOW_DATE,
        show_time=SHOW_TIME,
        show_type="movie",
    )
    fields.update(overrides)
    return ScheduleInfo(**fields)


def concert_schedule(**overrides) -> ScheduleInfo:
    fields = dict(
        id=CONCERT_ID,
        base_price=Decimal("100"),
        venue="Main Hall",
        seat_total=20,
        show_date=SHOW_DATE,
        show_time=SHOW_TIME,
        show_type="concert",
    )
    fields.update(overrides)
    return ScheduleInfo(**fields)


def promotion(code: str, discount_type: DiscountType, value: str, **overrides) -> Promotion:
    fields = dict(
        code=code,
        discount_type=discount_type,
        value=Decimal(value),
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        max_uses=100,
    )
    fields.update(overrides)
    return Promotion(**fields)


CUSTOMER = CustomerContact(name="Asha Rao", email="asha@example.com", phone="+91 98000 00000")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        SEAT_GATE_STRATEGY="local",
        REDIS_ENABLED=False,
        VENUE_TIMEZONE="UTC",
    )


@pytest.fixture
def payments() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def promotions() -> InMemoryPromotionStore:
    return InMemoryPromotionStore([
        promotion("FLAT600", DiscountType.FIXED_AMOUNT, "600"),
        promotion("FLAT1000", DiscountType.FIXED_AMOUNT, "1000"),
        promotion("TENOFF", DiscountType.PERCENTAGE, "10"),
        promotion("BUY2GET1", DiscountType.BUY_X_GET_Y, "2"),
    ])


@pytest_asyncio.fixture
async def core(settings, clock, payments, sink, promotions) -> BookingCore:
    """In-memory core with both schedules seeded. The expiry worker is not
    started; tests drive expiry with clock.advance() + expire_due()."""
    core = build_core(
        settings,
        clock=clock,
        schedules=InMemoryScheduleProvider([movie_schedule(), concert_schedule()]),
        promotions=promotions,
        payments=payments,
        gate=LocalSeatGate(),
        sinks=[sink],
    )
    await core.seat_store.add_seats(
        MOVIE_ID,
        [
            Seat(seat_id="A1", row="A", number=1, category=SeatCategory.STANDARD),
            Seat(seat_id="A2", row="A", number=2, category=SeatCategory.VIP),
        ],
        expected_total=2,
    )
    await core.seat_maps.generate(CONCERT_ID, VenueLayout(seats_per_row=5))
    return core


@pytest_asyncio.fixture
async def client(core: BookingCore) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against an app that uses the test core."""
    app = create_app(core)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
