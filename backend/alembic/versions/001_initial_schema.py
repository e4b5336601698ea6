"""Initial schema: schedules, seats, bookings, seat bookings, promotions.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue", sa.String(255), nullable=False),
        sa.Column("show_type", sa.String(50), nullable=False, server_default=sa.text("'movie'")),
        sa.Column("show_date", sa.Date(), nullable=False),
        sa.Column("show_time", sa.Time(), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("seat_total", sa.Integer(), nullable=False),
        sa.Column("sold_seats", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("seat_total > 0", name="check_schedule_seat_total_positive"),
        sa.CheckConstraint("sold_seats >= 0", name="check_schedule_sold_non_negative"),
    )
    op.create_index("ix_schedules_id", "schedules", ["id"])
    op.create_index("ix_schedules_show_date", "schedules", ["show_date", "show_time"])

    op.create_table(
        "seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("seat_code", sa.String(16), nullable=False),
        sa.Column("row_label", sa.String(8), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default=sa.text("'STANDARD'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("held_by", sa.String(64), nullable=True),
        sa.Column("held_until", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("schedule_id", "seat_code", name="uq_schedule_seat_code"),
        sa.CheckConstraint(
            "status IN ('AVAILABLE', 'RESERVED', 'SOLD', 'DISABLED', 'MAINTENANCE')",
            name="check_seat_status",
        ),
        sa.CheckConstraint("category IN ('STANDARD', 'PREMIUM', 'VIP')", name="check_seat_category"),
    )
    op.create_index("ix_seats_id", "seats", ["id"])
    op.create_index("ix_seats_schedule_id", "seats", ["schedule_id"])
    # Release and expiry look up every seat a session holds
    op.create_index("ix_seats_schedule_held_by", "seats", ["schedule_id", "held_by"])

    op.create_table(
        "promotions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("min_purchase_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_uses >= 0", name="check_promotion_uses_non_negative"),
        sa.CheckConstraint(
            "discount_type IN ('PERCENTAGE', 'FIXED_AMOUNT', 'BUY_X_GET_Y')",
            name="check_promotion_discount_type",
        ),
    )
    op.create_index("ix_promotions_id", "promotions", ["id"])
    op.create_index("ix_promotions_code", "promotions", ["code"], unique=True)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_number", sa.String(20), nullable=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=True, server_default=sa.text("'PENDING'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("promotion_code", sa.String(50), nullable=True),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED', "
            "'EXPIRED', 'REFUND_REQUESTED', 'REFUNDED')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"], unique=True)
    op.create_index("ix_bookings_schedule_id", "bookings", ["schedule_id"])
    # Hold expiry finds the PENDING booking backed by a session
    op.create_index("ix_bookings_session_id", "bookings", ["session_id"])

    op.create_table(
        "seat_bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("seat_code", sa.String(16), nullable=False),
        sa.Column("row_label", sa.String(8), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
    )
    op.create_index("ix_seat_bookings_id", "seat_bookings", ["id"])
    op.create_index("ix_seat_bookings_booking_id", "seat_bookings", ["booking_id"])


def downgrade() -> None:
    op.drop_table("seat_bookings")
    op.drop_table("bookings")
    op.drop_table("promotions")
    op.drop_table("seats")
    op.drop_table("schedules")
