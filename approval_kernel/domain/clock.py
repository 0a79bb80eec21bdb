"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that transition, scheduler and
    statistics code never call ``datetime.now()`` directly.  Deadlines,
    decision timestamps and ``time_remaining_ms`` all derive from the
    Clock handed to the service at construction.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    Deadline scenarios are driven by advancing the clock across a level's
    deadline and then sweeping::

        clock.advance(minutes=30)
        scheduler.sweep()
    """

    def __init__(self, start: datetime | None = None):
        start = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware start time")
        self._now = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(
        self,
        seconds: float = 0,
        *,
        minutes: float = 0,
        milliseconds: float = 0,
    ) -> datetime:
        """Move forward and return the new time.  Time never runs backwards."""
        step = timedelta(seconds=seconds, minutes=minutes, milliseconds=milliseconds)
        if step < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._now += step
        return self._now
