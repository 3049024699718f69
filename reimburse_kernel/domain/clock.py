"""
Clock -- Injectable time source.

Responsibility:
    Job scheduling (``scheduled_at``, retry backoff), export expiry and the
    matching engine's "missing date means today" fallback all depend on the
    current time.  Services receive a Clock instead of calling
    ``datetime.now()`` so that retry timing is testable.

Architecture position:
    Kernel > Domain -- zero I/O except SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` returns the UTC calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current UTC calendar date."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    is called, which makes retry windows observable:

        clock = DeterministicClock()
        queue.run_once()            # job fails, rescheduled +60s
        clock.advance(59)
        assert queue.run_once() is None
        clock.advance(1)
        assert queue.run_once() is not None
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0.0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds
