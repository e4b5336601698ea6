"""
Fire-and-forget notifications for hold expiry and booking status changes.

Delivery problems are logged and dropped here: a failing sink must never
change the outcome of a reservation or a booking transition.
"""

from typing import Any, Iterable

from seathold.core.logging import get_logger
from seathold.stores.interfaces import NotificationSink

logger = get_logger(__name__)


class LogNotificationSink(NotificationSink):
    """Default sink: every notification becomes a structured log line."""

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("notification", notification=event, **payload)


class Notifier:

    def __init__(self, sinks: Iterable[NotificationSink] = ()) -> None:
        self._sinks = list(sinks) or [LogNotificationSink()]

    async def notify(self, event: str, **payload: Any) -> None:
        for sink in self._sinks:
            try:
                await sink.send(event, payload)
            except Exception as e:
                logger.warning(
                    "notification_delivery_failed",
                    notification=event,
                    sink=type(sink).__name__,
                    error=str(e),
                )
