"""
HTTP client for the external payment gateway.

Any non-success (HTTP error, timeout, declined capture) is reported as an
unsuccessful PaymentResult. Nothing is ever synthesized: if the gateway
cannot be reached the capture failed.
"""

from decimal import Decimal

import httpx

from seathold.core.logging import get_logger
from seathold.domain.models import PaymentResult
from seathold.stores.interfaces import PaymentGateway

logger = get_logger(__name__)


class HttpPaymentGateway(PaymentGateway):

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_url(cls, base_url: str, timeout: float = 10.0) -> "HttpPaymentGateway":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def capture(self, booking_id: int, payment_method_id: str, amount: Decimal) -> PaymentResult:
        try:
            response = await self._client.post(
                "/captures",
                json={
                    "booking_id": booking_id,
                    "payment_method_id": payment_method_id,
                    "amount": str(amount),
                },
            )
        except httpx.HTTPError as e:
            logger.error("payment_gateway_unreachable", booking_id=booking_id, error=str(e))
            return PaymentResult(success=False, message="Payment gateway unavailable")

        if response.status_code >= 400:
            logger.warning("payment_capture_rejected", booking_id=booking_id, status_code=response.status_code)
            return PaymentResult(success=False, message=f"Gateway returned {response.status_code}")

        body = response.json()
        success = str(body.get("status", "")).lower() in ("success", "succeeded", "captured")
        return PaymentResult(
            success=success,
            transaction_id=body.get("transaction_id"),
            message=body.get("message"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
