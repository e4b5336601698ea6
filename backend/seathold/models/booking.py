"""
Booking model and its per-seat lines.

Key design decisions:
- Bookings are never deleted; status moves along the booking state machine
- Seat bookings are written with the booking in one transaction and keep a
  price snapshot, so later price changes never alter a booking total
- `session_id` links a PENDING booking to the hold that backs it
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from seathold.db.base import Base, TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(20), nullable=True, unique=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    # Nullable for rows imported from older systems; read back as PENDING
    status = Column(String(20), nullable=True, default="PENDING")
    payment_status = Column(String(20), nullable=False, default="PENDING")
    subtotal = Column(Numeric(10, 2), nullable=False)
    fee = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    promotion_code = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)

    seat_bookings = relationship(
        "SeatBooking",
        back_populates="booking",
        lazy="selectin",
        order_by="SeatBooking.position",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED', "
            "'EXPIRED', 'REFUND_REQUESTED', 'REFUNDED')",
            name="check_booking_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, number={self.booking_number}, status={self.status})>"


class SeatBooking(Base):
    __tablename__ = "seat_bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    seat_code = Column(String(16), nullable=False)
    row_label = Column(String(8), nullable=False)
    seat_number = Column(Integer, nullable=False)
    category = Column(String(20), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    booking = relationship("Booking", back_populates="seat_bookings")
