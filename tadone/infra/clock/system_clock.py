from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from tadone.domain.tasks.ports import Clock


class SystemClock(Clock):
    """Wall clock in the owner's local zone; "today" and "midnight" follow it."""

    def __init__(self, tz_name: str) -> None:
        self._tz = ZoneInfo(tz_name)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)
