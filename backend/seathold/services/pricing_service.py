"""
Seat pricing and promotion discounts.

  price      = explicit seat price, else base price x category multiplier
  subtotal   = sum of selected seat prices
  fee        = subtotal x BOOKING_FEE_RATE  (rounded half-up to PRICE_QUANTUM)
  tax        = subtotal x TAX_RATE          (rounded half-up to PRICE_QUANTUM)
  discount   = promotion discount on subtotal + fee + tax, capped at that amount
  total      = subtotal + fee + tax - discount  (never negative)
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from seathold.core.clock import Clock, utcnow
from seathold.core.logging import get_logger
from seathold.domain.errors import PromotionInvalid
from seathold.domain.models import PricingSummary, Promotion, Seat, SeatCategory
from seathold.stores.interfaces import PromotionStore

logger = get_logger(__name__)

CATEGORY_MULTIPLIERS = {
    SeatCategory.STANDARD: Decimal("1.0"),
    SeatCategory.PREMIUM: Decimal("1.5"),
    SeatCategory.VIP: Decimal("2.0"),
}

CENTS = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class PromotionOutcome:
    """Either a discount amount or the reason the code was rejected."""

    code: str
    discount: Decimal = ZERO
    reason: str | None = None
    promotion: Promotion | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is None


class PricingService:

    def __init__(
        self,
        promotions: PromotionStore,
        fee_rate: Decimal = Decimal("0.05"),
        tax_rate: Decimal = Decimal("0.18"),
        quantum: Decimal = Decimal("1"),
        clock: Clock = utcnow,
    ) -> None:
        self._promotions = promotions
        self._fee_rate = fee_rate
        self._tax_rate = tax_rate
        self._quantum = quantum
        self._clock = clock

    def price_for(self, category: SeatCategory, base_price: Decimal) -> Decimal:
        return (Decimal(base_price) * CATEGORY_MULTIPLIERS[category]).quantize(CENTS, rounding=ROUND_HALF_UP)

    def seat_price(self, seat: Seat, base_price: Decimal) -> Decimal:
        # An explicit stored price always wins over the category multiplier
        if seat.price is not None:
            return seat.price
        return self.price_for(seat.category, base_price)

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def summarize(
        self,
        seats: Iterable[Seat],
        base_price: Decimal,
        discount: Decimal = ZERO,
        promotion_code: str | None = None,
    ) -> PricingSummary:
        seat_prices = {seat.seat_id: self.seat_price(seat, base_price) for seat in seats}
        subtotal = sum(seat_prices.values(), ZERO)
        fee = self._round(subtotal * self._fee_rate)
        tax = self._round(subtotal * self._tax_rate)
        gross = subtotal + fee + tax
        applied = min(max(discount, ZERO), gross)
        return PricingSummary(
            subtotal=subtotal,
            fee=fee,
            tax=tax,
            discount=applied,
            total=gross - applied,
            promotion_code=promotion_code if applied or promotion_code else None,
            seat_prices=seat_prices,
        )

    async def apply_promotion(
        self,
        code: str,
        amount: Decimal,
        seat_prices: list[Decimal] | None = None,
        schedule_id: int | None = None,
    ) -> PromotionOutcome:
        """Compute a code's discount on amount, or say why it cannot be used."""
        code = code.strip()
        if not code:
            return PromotionOutcome(code=code, reason="Promotion code is empty")

        promotion = await self._promotions.validate(code)
        if promotion is None:
            return PromotionOutcome(code=code, reason=f"Promotion code {code} does not exist")

        reason = promotion.rejection_reason(self._clock().date(), amount, schedule_id)
        if reason:
            return PromotionOutcome(code=code, reason=reason, promotion=promotion)

        discount = promotion.calculate_discount(amount, seat_prices).quantize(CENTS, rounding=ROUND_HALF_UP)
        return PromotionOutcome(code=promotion.code, discount=min(discount, amount), promotion=promotion)

    async def quote(
        self,
        seats: list[Seat],
        base_price: Decimal,
        promotion_code: str | None = None,
        schedule_id: int | None = None,
    ) -> PricingSummary:
        """Summarize seats and apply a promotion code.

        Raises:
            PromotionInvalid: If a code is given and cannot be used.
        """
        summary = self.summarize(seats, base_price)
        if not promotion_code:
            return summary

        gross = summary.subtotal + summary.fee + summary.tax
        outcome = await self.apply_promotion(
            promotion_code,
            gross,
            seat_prices=list(summary.seat_prices.values()),
            schedule_id=schedule_id,
        )
        if not outcome.accepted:
            logger.info("promotion_rejected", code=promotion_code, reason=outcome.reason)
            raise PromotionInvalid(promotion_code, outcome.reason)

        return self.summarize(seats, base_price, discount=outcome.discount, promotion_code=outcome.code)

    async def record_promotion_use(self, code: str) -> None:
        await self._promotions.record_use(code)
