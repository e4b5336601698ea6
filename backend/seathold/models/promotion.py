"""
Promotion code model. Read by the pricing service; only the usage counter
is written by the core.
"""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, Numeric, String

from seathold.db.base import Base, TimestampMixin


class Promotion(Base, TimestampMixin):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    max_uses = Column(Integer, nullable=False)
    current_uses = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="ACTIVE")
    min_purchase_amount = Column(Numeric(10, 2), nullable=False, default=0)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=True)

    __table_args__ = (
        CheckConstraint("current_uses >= 0", name="check_promotion_uses_non_negative"),
        CheckConstraint(
            "discount_type IN ('PERCENTAGE', 'FIXED_AMOUNT', 'BUY_X_GET_Y')",
            name="check_promotion_discount_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Promotion(code={self.code}, uses={self.current_uses}/{self.max_uses})>"
