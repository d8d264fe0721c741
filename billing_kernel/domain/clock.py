"""
Clock -- Injectable time source.

Responsibility:
    Lets services stamp ``issued_at`` / ``cancelled_at`` and pick the default
    billing month without calling ``datetime.now()`` directly, so lifecycle
    tests can pin time.

Architecture position:
    Kernel > Domain -- no I/O except SystemClock, the one sanctioned time
    boundary.

Invariants enforced:
    - Processing time never decides a cash-cut bucket; buckets come from the
      receipt's operating date.  The clock only stamps audit timestamps.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today(tz)`` is the calendar date of ``now()`` in ``tz``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self, tz: str | None = None) -> date:
        """Calendar date in the given IANA timezone (UTC when omitted)."""
        current = self.now()
        if tz:
            current = current.astimezone(ZoneInfo(tz))
        else:
            current = current.astimezone(timezone.utc)
        return current.date()


class SystemClock(Clock):
    """Production clock returning real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds
