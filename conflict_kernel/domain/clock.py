"""
Injectable time source.

Workflows, the ledger and the queue never call ``datetime.now()``; they take
a ``Clock`` so SLA deadlines, appeal windows and adjustment expiry can be
pinned in tests.  ``SystemClock`` is the only place wall-clock time enters.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Returns aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen until ``advance`` is called."""

    def __init__(self, start: datetime | None = None):
        self._at = start or datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._at

    def advance(self, seconds: float = 1, *, hours: float = 0, days: float = 0) -> datetime:
        self._at += timedelta(days=days, hours=hours, seconds=seconds)
        return self._at
