"""
Wiring of stores, gate and services.

build_core() picks the storage backend and seat gate from Settings; tests
pass their own stores, clock and payment gateway instead.
"""

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncEngine

from seathold.core.clock import Clock, utcnow
from seathold.core.config import Settings, get_settings
from seathold.core.logging import get_logger
from seathold.db.session import create_engine, create_session_factory
from seathold.infrastructure.payment_gateway import HttpPaymentGateway
from seathold.services.availability_service import AvailabilitySynchronizer
from seathold.services.booking_service import BookingService
from seathold.services.booking_window import BookingWindowValidator
from seathold.services.hold_expiry import HoldExpiryQueue
from seathold.services.interfaces.seat_gate import SeatGate
from seathold.services.notification_service import Notifier
from seathold.services.pricing_service import PricingService
from seathold.services.reservation_service import ReservationManager
from seathold.services.seat_events import SeatEventBus
from seathold.services.seat_map_service import SeatConsistencyService, SeatMapService
from seathold.services.strategy_factory import get_seat_gate_strategy
from seathold.stores.interfaces import (
    BookingStore,
    NotificationSink,
    PaymentGateway,
    PromotionStore,
    ScheduleProvider,
    SeatMapStore,
)
from seathold.stores.memory import (
    InMemoryBookingStore,
    InMemoryPromotionStore,
    InMemoryScheduleProvider,
    InMemorySeatMapStore,
)
from seathold.stores.sql import SqlBookingStore, SqlPromotionStore, SqlScheduleProvider, SqlSeatMapStore

logger = get_logger(__name__)


@dataclass
class BookingCore:
    settings: Settings
    seat_store: SeatMapStore
    schedules: ScheduleProvider
    bookings: BookingStore
    promotions: PromotionStore
    payments: PaymentGateway
    events: SeatEventBus
    seat_maps: SeatMapService
    consistency: SeatConsistencyService
    reservations: ReservationManager
    availability: AvailabilitySynchronizer
    pricing: PricingService
    window: BookingWindowValidator
    booking_service: BookingService
    clock: Clock
    engine: AsyncEngine | None = None
    _closables: list = field(default_factory=list)

    def start(self) -> None:
        self.reservations.start()
        logger.info("booking_core_started", storage=self.settings.STORAGE_BACKEND)

    async def stop(self) -> None:
        await self.reservations.stop()
        for closable in self._closables:
            await closable.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("booking_core_stopped")


def build_core(
    settings: Settings | None = None,
    *,
    clock: Clock = utcnow,
    seat_store: SeatMapStore | None = None,
    schedules: ScheduleProvider | None = None,
    bookings: BookingStore | None = None,
    promotions: PromotionStore | None = None,
    payments: PaymentGateway | None = None,
    gate: SeatGate | None = None,
    sinks: Iterable[NotificationSink] = (),
) -> BookingCore:
    settings = settings or get_settings()
    engine = None
    closables = []

    if settings.STORAGE_BACKEND == "sql":
        engine = create_engine(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)
        seat_store = seat_store or SqlSeatMapStore(session_factory)
        schedules = schedules or SqlScheduleProvider(session_factory)
        bookings = bookings or SqlBookingStore(session_factory)
        promotions = promotions or SqlPromotionStore(session_factory)
    else:
        seat_store = seat_store or InMemorySeatMapStore()
        schedules = schedules or InMemoryScheduleProvider()
        bookings = bookings or InMemoryBookingStore()
        promotions = promotions or InMemoryPromotionStore()

    if payments is None:
        gateway = HttpPaymentGateway.from_url(settings.PAYMENT_GATEWAY_URL, settings.PAYMENT_TIMEOUT_SECONDS)
        closables.append(gateway)
        payments = gateway

    events = SeatEventBus(settings.SEAT_EVENT_BUFFER)
    notifier = Notifier(sinks)
    reservations = ReservationManager(
        seat_store,
        gate or get_seat_gate_strategy(settings),
        HoldExpiryQueue(clock),
        events,
        notifier,
        hold_seconds=settings.HOLD_DURATION_SECONDS,
        max_seats=settings.MAX_SEATS_PER_RESERVATION,
        clock=clock,
    )
    pricing = PricingService(
        promotions,
        fee_rate=settings.BOOKING_FEE_RATE,
        tax_rate=settings.TAX_RATE,
        quantum=settings.PRICE_QUANTUM,
        clock=clock,
    )
    window = BookingWindowValidator(
        grace_minutes=settings.MOVIE_GRACE_MINUTES,
        warning_minutes=settings.URGENCY_WARNING_MINUTES,
        timezone=settings.VENUE_TIMEZONE,
        clock=clock,
    )
    booking_service = BookingService(
        bookings,
        schedules,
        seat_store,
        reservations,
        pricing,
        window,
        payments,
        notifier,
        cancellation_cutoff_hours=settings.CANCELLATION_CUTOFF_HOURS,
        clock=clock,
    )
    return BookingCore(
        settings=settings,
        seat_store=seat_store,
        schedules=schedules,
        bookings=bookings,
        promotions=promotions,
        payments=payments,
        events=events,
        seat_maps=SeatMapService(seat_store, schedules),
        consistency=SeatConsistencyService(seat_store, schedules),
        reservations=reservations,
        availability=AvailabilitySynchronizer(
            seat_store,
            events,
            poll_interval=settings.SYNC_POLL_INTERVAL_SECONDS,
            max_retries=settings.SYNC_MAX_RETRIES,
            refetch_ratio=settings.SYNC_REFETCH_RATIO,
        ),
        pricing=pricing,
        window=window,
        booking_service=booking_service,
        clock=clock,
        engine=engine,
        _closables=closables,
    )
