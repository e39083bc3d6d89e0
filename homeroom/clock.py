"""
Clock — the only time source the services trust.

Every instant handed out is timezone-aware UTC so that documents written by
one viewer reconcile identically for a viewer in another time zone.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional


class Clock:
    """Interface: return the current instant."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """A clock that only moves when told to. Used by tests and the seed script."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        start = start or datetime.now(timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, **kwargs: float) -> datetime:
        """Move forward by `seconds` (plus any timedelta keyword arguments)."""
        self._now += timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        self._now = when.astimezone(timezone.utc)


def local_day_start(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Midnight of `now`'s calendar day in tz (system local zone when None)."""
    local = now.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=local.tzinfo)
