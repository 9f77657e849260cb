"""
Clock collaborators.

All time-dependent decisions (session and code expiry, TOTP steps) read
the time through a Clock so tests can control it.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Source of the current UTC time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """
    A clock that only moves when told to.

    Example:
        >>> clock = FrozenClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        >>> clock.advance(seconds=30).isoformat()
        '2024-01-01T00:00:30+00:00'
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)

    def advance(self, **delta) -> datetime:
        """Move forward by timedelta keyword arguments and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
