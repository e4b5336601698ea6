"""
SQLAlchemy (async) store implementations.

Every call runs in its own short transaction; no transaction is held open
across a reservation or a payment capture. Holds are written with
conditional UPDATEs on status, holder and hold deadline, checked through
rowcount, so processes sharing the database never both hold one seat.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seathold.core.logging import get_logger
from seathold.domain.errors import BookingNotFound, ScheduleNotFound, SeatMapInUse, SeatNotFound
from seathold.domain.models import (
    Booking,
    BookingStatus,
    CustomerContact,
    DiscountType,
    PaymentStatus,
    Promotion,
    PromotionStatus,
    ScheduleInfo,
    Seat,
    SeatBooking,
    SeatCategory,
    SeatMap,
    SeatStatus,
)
from seathold.models.booking import Booking as BookingRow
from seathold.models.booking import SeatBooking as SeatBookingRow
from seathold.models.promotion import Promotion as PromotionRow
from seathold.models.schedule import Schedule as ScheduleRow
from seathold.models.seat import Seat as SeatRow
from seathold.stores.interfaces import BookingStore, PromotionStore, ScheduleProvider, SeatMapStore
from seathold.stores.memory import IN_USE, group_rows

logger = get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def _aware(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _seat_to_domain(row: SeatRow) -> Seat:
    return Seat(
        seat_id=row.seat_code,
        row=row.row_label,
        number=row.seat_number,
        category=SeatCategory(row.category),
        status=SeatStatus(row.status),
        price=Decimal(row.price) if row.price is not None else None,
        held_by=row.held_by,
        held_until=_aware(row.held_until) if row.held_until is not None else None,
    )


async def _require_schedule(session: AsyncSession, schedule_id: int) -> ScheduleRow:
    schedule = await session.get(ScheduleRow, schedule_id)
    if schedule is None:
        raise ScheduleNotFound(schedule_id)
    return schedule


class SqlSeatMapStore(SeatMapStore):

    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def get_seat_map(self, schedule_id: int) -> SeatMap:
        async with self._sessions() as session:
            schedule = await _require_schedule(session, schedule_id)
            result = await session.execute(select(SeatRow).where(SeatRow.schedule_id == schedule_id))
            seats = [_seat_to_domain(row) for row in result.scalars().all()]
            return SeatMap(
                schedule_id=schedule_id,
                rows=group_rows(seats),
                expected_total=schedule.seat_total,
                version=schedule.version,
            )

    async def get_seat(self, schedule_id: int, seat_id: str) -> Seat:
        async with self._sessions() as session:
            result = await session.execute(
                select(SeatRow).where(SeatRow.schedule_id == schedule_id, SeatRow.seat_code == seat_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                await _require_schedule(session, schedule_id)
                raise SeatNotFound(schedule_id, seat_id)
            return _seat_to_domain(row)

    async def set_seat_status(
        self,
        schedule_id: int,
        seat_id: str,
        status: SeatStatus,
        held_by: str | None = None,
        held_until: datetime | None = None,
    ) -> Seat:
        updated = await self._conditional_update(
            schedule_id,
            seat_id,
            (),
            status=status.value,
            held_by=held_by,
            held_until=_utc(held_until),
        )
        if updated is None:
            raise SeatNotFound(schedule_id, seat_id)
        return updated

    async def claim_seat(
        self,
        schedule_id: int,
        seat_id: str,
        session_id: str,
        held_until: datetime,
        now: datetime,
        previous_session_id: str | None = None,
    ) -> Seat | None:
        owners = [session_id] + ([previous_session_id] if previous_session_id else [])
        # Optimistic claim: the WHERE clause re-checks availability at write time
        claimable = or_(
            SeatRow.status == SeatStatus.AVAILABLE.value,
            and_(
                SeatRow.status == SeatStatus.RESERVED.value,
                or_(
                    SeatRow.held_by.in_(owners),
                    SeatRow.held_until.is_(None),
                    SeatRow.held_until <= _utc(now),
                ),
            ),
        )
        return await self._conditional_update(
            schedule_id,
            seat_id,
            (claimable,),
            status=SeatStatus.RESERVED.value,
            held_by=session_id,
            held_until=_utc(held_until),
        )

    async def settle_hold(self, schedule_id: int, seat_id: str, session_id: str, status: SeatStatus) -> Seat | None:
        return await self._conditional_update(
            schedule_id,
            seat_id,
            (SeatRow.status == SeatStatus.RESERVED.value, SeatRow.held_by == session_id),
            status=status.value,
            held_by=None,
            held_until=None,
        )

    async def _conditional_update(self, schedule_id: int, seat_id: str, conditions, **values) -> Seat | None:
        """UPDATE one seat WHERE conditions hold; None if no row matched.

        Raises ScheduleNotFound / SeatNotFound when the seat does not exist at all.
        """
        async with self._sessions() as session:
            result = await session.execute(
                update(SeatRow)
                .where(SeatRow.schedule_id == schedule_id, SeatRow.seat_code == seat_id, *conditions)
                .values(**values)
            )
            if result.rowcount == 0:
                await session.rollback()
                exists = await session.scalar(
                    select(func.count(SeatRow.id)).where(
                        SeatRow.schedule_id == schedule_id,
                        SeatRow.seat_code == seat_id,
                    )
                )
                if not exists:
                    await _require_schedule(session, schedule_id)
                    raise SeatNotFound(schedule_id, seat_id)
                return None
            await session.execute(
                update(ScheduleRow)
                .where(ScheduleRow.id == schedule_id)
                .values(version=ScheduleRow.version + 1)
            )
            await session.commit()
        return await self.get_seat(schedule_id, seat_id)

    async def add_seats(self, schedule_id: int, seats: Iterable[Seat], expected_total: int) -> SeatMap:
        async with self._sessions() as session:
            schedule = await session.scalar(
                select(ScheduleRow).where(ScheduleRow.id == schedule_id).with_for_update()
            )
            if schedule is None:
                raise ScheduleNotFound(schedule_id)
            in_use = await session.execute(
                select(SeatRow.seat_code).where(
                    SeatRow.schedule_id == schedule_id,
                    SeatRow.status.in_([status.value for status in IN_USE]),
                )
            )
            codes = in_use.scalars().all()
            if codes:
                raise SeatMapInUse(schedule_id, codes)
            # Regeneration replaces the whole map
            await session.execute(delete(SeatRow).where(SeatRow.schedule_id == schedule_id))
            await session.execute(
                update(ScheduleRow)
                .where(ScheduleRow.id == schedule_id)
                .values(version=ScheduleRow.version + 1)
            )
            session.add_all(
                SeatRow(
                    schedule_id=schedule_id,
                    seat_code=seat.seat_id,
                    row_label=seat.row,
                    seat_number=seat.number,
                    category=seat.category.value,
                    status=seat.status.value,
                    price=seat.price,
                    held_by=seat.held_by,
                    held_until=_utc(seat.held_until),
                )
                for seat in seats
            )
            await session.commit()
        logger.info("seat_map_stored", schedule_id=schedule_id, expected_total=expected_total)
        return await self.get_seat_map(schedule_id)


class SqlScheduleProvider(ScheduleProvider):

    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def get_schedule(self, schedule_id: int) -> ScheduleInfo:
        async with self._sessions() as session:
            row = await _require_schedule(session, schedule_id)
            return ScheduleInfo(
                id=row.id,
                base_price=Decimal(row.base_price),
                venue=row.venue,
                seat_total=row.seat_total,
                show_date=row.show_date,
                show_time=row.show_time,
                show_type=row.show_type,
                sold_seats=row.sold_seats,
            )

    async def adjust_sold_seats(self, schedule_id: int, delta: int) -> int:
        async with self._sessions() as session:
            adjusted = ScheduleRow.sold_seats + delta
            result = await session.execute(
                update(ScheduleRow)
                .where(ScheduleRow.id == schedule_id)
                .values(sold_seats=case((adjusted < 0, 0), else_=adjusted))
            )
            if result.rowcount == 0:
                raise ScheduleNotFound(schedule_id)
            await session.commit()
            sold = await session.scalar(select(ScheduleRow.sold_seats).where(ScheduleRow.id == schedule_id))
            return int(sold)


def _booking_to_domain(row: BookingRow) -> Booking:
    if row.status is None:
        # Missing status is bad data, never an implicit confirmation
        logger.warning("booking_status_missing", booking_id=row.id)
        status = BookingStatus.PENDING
    else:
        status = BookingStatus(row.status)
    return Booking(
        id=row.id,
        booking_number=row.booking_number,
        schedule_id=row.schedule_id,
        session_id=row.session_id,
        seats=tuple(
            SeatBooking(
                seat_id=line.seat_code,
                row=line.row_label,
                number=line.seat_number,
                category=SeatCategory(line.category),
                price=Decimal(line.price),
            )
            for line in row.seat_bookings
        ),
        subtotal=Decimal(row.subtotal),
        fee=Decimal(row.fee),
        tax=Decimal(row.tax),
        discount=Decimal(row.discount),
        total_amount=Decimal(row.total_amount),
        customer=CustomerContact(
            name=row.customer_name,
            email=row.customer_email,
            phone=row.customer_phone,
        ),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        status=status,
        payment_status=PaymentStatus(row.payment_status or PaymentStatus.PENDING.value),
        promotion_code=row.promotion_code,
        transaction_id=row.transaction_id,
    )


class SqlBookingStore(BookingStore):

    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def add(self, booking: Booking) -> Booking:
        async with self._sessions() as session:
            row = BookingRow(
                schedule_id=booking.schedule_id,
                session_id=booking.session_id,
                status=booking.status.value,
                payment_status=booking.payment_status.value,
                subtotal=booking.subtotal,
                fee=booking.fee,
                tax=booking.tax,
                discount=booking.discount,
                total_amount=booking.total_amount,
                promotion_code=booking.promotion_code,
                transaction_id=booking.transaction_id,
                customer_name=booking.customer.name,
                customer_email=booking.customer.email,
                customer_phone=booking.customer.phone,
                created_at=booking.created_at,
                updated_at=booking.updated_at,
            )
            session.add(row)
            await session.flush()
            row.booking_number = f"BK{row.id:05d}"
            session.add_all(
                SeatBookingRow(
                    booking_id=row.id,
                    position=position,
                    seat_code=seat.seat_id,
                    row_label=seat.row,
                    seat_number=seat.number,
                    category=seat.category.value,
                    price=seat.price,
                )
                for position, seat in enumerate(booking.seats)
            )
            await session.commit()
            booking_id = row.id
        return await self.get(booking_id)

    async def _fetch_one(self, *criteria) -> Booking | None:
        async with self._sessions() as session:
            result = await session.execute(select(BookingRow).where(*criteria))
            row = result.scalar_one_or_none()
            return _booking_to_domain(row) if row is not None else None

    async def get(self, booking_id: int) -> Booking:
        booking = await self._fetch_one(BookingRow.id == booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def get_by_number(self, booking_number: str) -> Booking:
        booking = await self._fetch_one(BookingRow.booking_number == booking_number)
        if booking is None:
            raise BookingNotFound(booking_number)
        return booking

    async def save(self, booking: Booking) -> Booking:
        async with self._sessions() as session:
            result = await session.execute(
                update(BookingRow)
                .where(BookingRow.id == booking.id)
                .values(
                    status=booking.status.value,
                    payment_status=booking.payment_status.value,
                    transaction_id=booking.transaction_id,
                    subtotal=booking.subtotal,
                    fee=booking.fee,
                    tax=booking.tax,
                    discount=booking.discount,
                    total_amount=booking.total_amount,
                    promotion_code=booking.promotion_code,
                    customer_name=booking.customer.name,
                    customer_email=booking.customer.email,
                    customer_phone=booking.customer.phone,
                    updated_at=booking.updated_at,
                )
            )
            if result.rowcount == 0:
                raise BookingNotFound(booking.id)
            await session.commit()
        return await self.get(booking.id)

    async def _fetch_many(self, *criteria) -> list[Booking]:
        async with self._sessions() as session:
            result = await session.execute(select(BookingRow).where(*criteria).order_by(BookingRow.id))
            return [_booking_to_domain(row) for row in result.scalars().all()]

    async def find_pending_for_session(self, session_id: str) -> list[Booking]:
        return await self._fetch_many(
            BookingRow.session_id == session_id,
            BookingRow.status == BookingStatus.PENDING.value,
        )

    async def list_for_schedule(self, schedule_id: int) -> list[Booking]:
        return await self._fetch_many(BookingRow.schedule_id == schedule_id)


class SqlPromotionStore(PromotionStore):

    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def validate(self, code: str) -> Promotion | None:
        async with self._sessions() as session:
            result = await session.execute(
                select(PromotionRow).where(func.upper(PromotionRow.code) == code.strip().upper())
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return Promotion(
                code=row.code,
                discount_type=DiscountType(row.discount_type),
                value=Decimal(row.discount_value),
                start_date=row.start_date,
                end_date=row.end_date,
                max_uses=row.max_uses,
                current_uses=row.current_uses,
                status=PromotionStatus(row.status),
                min_purchase_amount=Decimal(row.min_purchase_amount),
                schedule_id=row.schedule_id,
            )

    async def record_use(self, code: str) -> None:
        async with self._sessions() as session:
            uses = PromotionRow.current_uses + 1
            await session.execute(
                update(PromotionRow)
                .where(func.upper(PromotionRow.code) == code.strip().upper())
                .values(
                    current_uses=uses,
                    status=case(
                        (uses >= PromotionRow.max_uses, PromotionStatus.EXPIRED.value),
                        else_=PromotionRow.status,
                    ),
                )
            )
            await session.commit()
