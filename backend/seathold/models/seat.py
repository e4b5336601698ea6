"""
Seat model: one seat of a schedule's seat map.

Key design decisions:
- (schedule_id, seat_code) is unique; seat_code is row label + number ("A1")
- `held_by` stamps RESERVED seats with the owning reservation session and
  `held_until` with its deadline; a hold past its deadline may be taken over
  by any process
- `price` is nullable: NULL means "derive from schedule base price by category"
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from seathold.db.base import Base, TimestampMixin


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    seat_code = Column(String(16), nullable=False)
    row_label = Column(String(8), nullable=False)
    seat_number = Column(Integer, nullable=False)
    category = Column(String(20), nullable=False, default="STANDARD")
    status = Column(String(20), nullable=False, default="AVAILABLE")
    price = Column(Numeric(10, 2), nullable=True)
    held_by = Column(String(64), nullable=True)
    held_until = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_code", name="uq_schedule_seat_code"),
        CheckConstraint(
            "status IN ('AVAILABLE', 'RESERVED', 'SOLD', 'DISABLED', 'MAINTENANCE')",
            name="check_seat_status",
        ),
        CheckConstraint("category IN ('STANDARD', 'PREMIUM', 'VIP')", name="check_seat_category"),
        # Reservation lookups: "which seats does this session hold"
        Index("ix_seats_schedule_held_by", "schedule_id", "held_by"),
    )

    def __repr__(self) -> str:
        return f"<Seat(schedule={self.schedule_id}, seat={self.seat_code}, status={self.status})>"
