"""
Quiet Hours Policy

Daily window, in a fixed reference time zone, during which no reminders are
delivered. Windows may wrap past midnight (22:00-07:30).
"""

import datetime
import logging
from typing import Callable, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def _since_midnight(moment: datetime.datetime) -> datetime.timedelta:
    return datetime.timedelta(hours=moment.hour, minutes=moment.minute,
                              seconds=moment.second, microseconds=moment.microsecond)


class QuietHours:
    """Quiet window check and deferral computation"""

    def __init__(self, start: float, end: float, time_zone: str = "UTC", enabled: bool = True,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.start = start
        self.end = end
        self.enabled = enabled
        self.tz = ZoneInfo(time_zone)
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    @classmethod
    def from_config(cls, config, clock: Optional[Callable[[], datetime.datetime]] = None) -> "QuietHours":
        return cls(
            start=config.quiet_hours_start,
            end=config.quiet_hours_end,
            time_zone=config.time_zone,
            enabled=config.quiet_hours_enabled,
            clock=clock,
        )

    def now(self) -> datetime.datetime:
        """Current time in the reference time zone"""
        current = self._clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=datetime.timezone.utc)
        return current.astimezone(self.tz)

    def is_quiet(self, moment: Optional[datetime.datetime] = None) -> bool:
        """Whether moment (default: now) falls inside the quiet window"""
        if not self.enabled or self.start == self.end:
            return False
        local = moment.astimezone(self.tz) if moment is not None else self.now()
        elapsed = _since_midnight(local)
        start, end = datetime.timedelta(hours=self.start), datetime.timedelta(hours=self.end)
        if start < end:
            return start <= elapsed < end
        return elapsed >= start or elapsed < end

    def window_end(self, moment: Optional[datetime.datetime] = None) -> datetime.datetime:
        """Next occurrence of the window end strictly after moment"""
        local = moment.astimezone(self.tz) if moment is not None else self.now()
        # Same offset is_quiet compares against, so the window ends exactly here
        offset = datetime.timedelta(hours=self.end)
        candidate = datetime.datetime.combine(local.date(), datetime.time(0), tzinfo=self.tz) + offset
        if candidate <= local:
            next_day = local.date() + datetime.timedelta(days=1)
            candidate = datetime.datetime.combine(next_day, datetime.time(0), tzinfo=self.tz) + offset
        return candidate

    def delay_until_end(self, moment: Optional[datetime.datetime] = None) -> float:
        """Seconds from moment until the quiet window ends (0 outside the window)"""
        local = moment.astimezone(self.tz) if moment is not None else self.now()
        if not self.is_quiet(local):
            return 0.0
        end = self.window_end(local)
        # Subtract in UTC so a DST change inside the window is accounted for
        delta = end.astimezone(datetime.timezone.utc) - local.astimezone(datetime.timezone.utc)
        return max(delta.total_seconds(), 0.0)
