"""Fake Time implementation for testing.

FakeTime is an in-memory implementation that tracks sleep() calls without
actually sleeping, enabling fast tests. Sleeping advances the monotonic clock
and the wall clock, so lock deadlines expire deterministically.
"""

from datetime import UTC, datetime, timedelta

from lattice.core.time.abc import Time

DEFAULT_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


class FakeTime(Time):
    """Fake implementation that tracks calls without sleeping.

    This class has NO public setup methods. All state is provided via constructor
    or captured during execution.
    """

    def __init__(self, *, now: datetime = DEFAULT_NOW) -> None:
        """Create FakeTime starting at the given wall-clock time."""
        self._now = now
        self._monotonic = 0.0
        self._sleep_calls: list[float] = []

    @property
    def sleep_calls(self) -> list[float]:
        """Read-only access to tracked sleep calls for test assertions.

        Returns list of seconds values passed to sleep().
        """
        return self._sleep_calls

    def sleep(self, seconds: float) -> None:
        """Track sleep call and advance both clocks without actually sleeping.

        Args:
            seconds: Number of seconds that would have been slept
        """
        self._sleep_calls.append(seconds)
        self._monotonic += seconds
        self._now += timedelta(seconds=seconds)

    def monotonic(self) -> float:
        return self._monotonic

    def now(self) -> datetime:
        return self._now
