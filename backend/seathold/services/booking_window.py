"""
Booking cutoff policy.

Movies stay bookable for a grace period after the scheduled start; every
other show type closes the moment it starts. Schedule date and time are
venue-local wall clock values, interpreted in VENUE_TIMEZONE.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from seathold.core.clock import Clock, utcnow
from seathold.core.logging import get_logger
from seathold.domain.errors import BookingWindowClosed
from seathold.domain.models import ScheduleInfo

logger = get_logger(__name__)

GRACE_SHOW_TYPES = frozenset({"movie"})


@dataclass(frozen=True)
class WindowDecision:
    allowed: bool
    minutes_elapsed: int
    reason: str | None = None
    warning: str | None = None


class BookingWindowValidator:

    def __init__(
        self,
        grace_minutes: int = 15,
        warning_minutes: int = 30,
        timezone: str = "UTC",
        clock: Clock = utcnow,
    ) -> None:
        self._grace = timedelta(minutes=grace_minutes)
        self._warning = timedelta(minutes=warning_minutes)
        self._tz = ZoneInfo(timezone)
        self._clock = clock

    def show_start(self, schedule: ScheduleInfo) -> datetime:
        return datetime.combine(schedule.show_date, schedule.show_time, tzinfo=self._tz)

    def _has_grace(self, schedule: ScheduleInfo) -> bool:
        return schedule.show_type.strip().lower() in GRACE_SHOW_TYPES

    def check(self, schedule: ScheduleInfo, now: datetime | None = None) -> WindowDecision:
        """Decide whether booking is permitted right now."""
        now = now or self._clock()
        elapsed = now - self.show_start(schedule)
        minutes_elapsed = int(elapsed.total_seconds() // 60)

        if self._has_grace(schedule):
            if elapsed > self._grace:
                return WindowDecision(
                    allowed=False,
                    minutes_elapsed=minutes_elapsed,
                    reason=(
                        f"Booking closed: the {schedule.show_type} started {minutes_elapsed} minutes ago "
                        f"and the {int(self._grace.total_seconds() // 60)} minute grace period has passed"
                    ),
                )
        elif elapsed >= timedelta(0):
            return WindowDecision(
                allowed=False,
                minutes_elapsed=minutes_elapsed,
                reason=f"Booking closed: the {schedule.show_type} started {minutes_elapsed} minutes ago",
            )

        return WindowDecision(
            allowed=True,
            minutes_elapsed=minutes_elapsed,
            warning=self.urgency_warning(schedule, now),
        )

    def ensure_open(self, schedule: ScheduleInfo, now: datetime | None = None) -> WindowDecision:
        decision = self.check(schedule, now)
        if not decision.allowed:
            logger.info(
                "booking_window_closed",
                schedule_id=schedule.id,
                show_type=schedule.show_type,
                minutes_elapsed=decision.minutes_elapsed,
                reason=decision.reason,
            )
            raise BookingWindowClosed(schedule.id, decision.reason, decision.minutes_elapsed)
        return decision

    def urgency_warning(self, schedule: ScheduleInfo, now: datetime | None = None) -> str | None:
        """Non-blocking nudge shown when the show is about to start (or in grace)."""
        now = now or self._clock()
        remaining = self.show_start(schedule) - now
        if remaining > self._warning:
            return None
        if remaining > timedelta(0):
            minutes = max(1, int(remaining.total_seconds() // 60))
            return f"Hurry! The show starts in {minutes} minutes"
        if self._has_grace(schedule):
            left = self._grace + remaining
            if left >= timedelta(0):
                return f"The show has started, booking closes in {int(left.total_seconds() // 60)} minutes"
        return None
