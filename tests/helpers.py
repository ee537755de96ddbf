"""Shared builders for the reminder tests"""

import datetime
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from interfaces.slack.platform import SlackPlatform
from reminders.config import ReminderConfig
from reminders.engine import ReminderEngine
from reminders.models import OriginRef

PARIS = ZoneInfo("Europe/Paris")


def paris_time(year, month, day, hour, minute=0) -> datetime.datetime:
    return datetime.datetime(year, month, day, hour, minute, tzinfo=PARIS)


def make_origin(ts: str = "1760000000.000100", channel_id: str = "C0DEPLOYS",
                author_id: str = "UAUTHOR", content: str = "Please review the deploy plan") -> OriginRef:
    return OriginRef(
        channel_id=channel_id,
        ts=ts,
        author_id=author_id,
        content=content,
        permalink=f"https://acme.slack.com/archives/{channel_id}/p{ts.replace('.', '')}",
        channel_name="deploys",
        team_id="T0ACME",
        author_name="Alice",
        author_avatar_url="https://avatars.slack-edge.com/alice_72.png",
    )


class Clock:
    """Settable clock for the quiet hours policy"""

    def __init__(self, now: Optional[datetime.datetime] = None):
        self.now = now or paris_time(2026, 10, 18, 12, 0)

    def __call__(self) -> datetime.datetime:
        return self.now


def make_engine(max_reminders: int = 2, interval_ms: int = 1000, quiet_hours: bool = False,
                clock: Optional[Clock] = None):
    config = ReminderConfig(
        reminder_interval_ms=interval_ms,
        max_reminders=max_reminders,
        quiet_hours_enabled=quiet_hours,
        quiet_hours_start=22.0,
        quiet_hours_end=7.5,
        time_zone="Europe/Paris",
    )
    platform = SlackPlatform(MagicMock())
    platform.deliver_direct_message = AsyncMock(return_value=None)
    engine = ReminderEngine(platform, config, clock=clock or Clock())
    return engine, platform


def delivered_to(platform) -> List[str]:
    return [call.args[0] for call in platform.deliver_direct_message.call_args_list]


class AsyncPages:
    """Stand-in for a paginated AsyncSlackResponse"""

    def __init__(self, *pages):
        self.pages = pages

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for page in self.pages:
            yield page
