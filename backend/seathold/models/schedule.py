"""
Show schedule model: one performance of a show at a venue.

Key design decisions:
- `seat_total` is the venue capacity and is authoritative; the seat map is
  generated from it and never writes back to it
- `sold_seats` is denormalized for reporting (avoids COUNT over bookings)
"""

from sqlalchemy import CheckConstraint, Column, Date, Index, Integer, Numeric, String, Time

from seathold.db.base import Base, TimestampMixin


class Schedule(Base, TimestampMixin):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    venue = Column(String(255), nullable=False)
    show_type = Column(String(50), nullable=False, default="movie")
    show_date = Column(Date, nullable=False)
    show_time = Column(Time, nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    seat_total = Column(Integer, nullable=False)
    sold_seats = Column(Integer, nullable=False, default=0)

    # Bumped on every seat status change; lets views detect a stale seat map
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("seat_total > 0", name="check_schedule_seat_total_positive"),
        CheckConstraint("sold_seats >= 0", name="check_schedule_sold_non_negative"),
        Index("ix_schedules_show_date", "show_date", "show_time"),
    )

    def __repr__(self) -> str:
        return f"<Schedule(id={self.id}, venue={self.venue}, date={self.show_date} {self.show_time})>"
