"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that domain and module code
    never call ``datetime.now()`` or ``date.today()`` directly.  "Today"
    drives lifecycle defaults (termination date, expiry sweep, recurring
    catch-up), so tests must be able to pin it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - None.  DeterministicClock never advances on its own.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need the current time receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` returns the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time (UTC).

    Non-goals:
        Not suitable for deterministic testing.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on every call.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: If provided, clock always returns this time.
                       If None, uses a default epoch time.
        """
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )

    @classmethod
    def on(cls, day: date) -> "DeterministicClock":
        """Clock pinned to noon UTC on ``day``."""
        return cls(datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._fixed_time
