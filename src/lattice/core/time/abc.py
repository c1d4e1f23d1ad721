"""Time operations abstraction for testing.

This module provides an ABC for time operations so that lock polling and
timestamps can be driven deterministically in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class Time(ABC):
    """Abstract time operations for dependency injection."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Sleep for specified number of seconds.

        Args:
            seconds: Number of seconds to sleep
        """
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Return a monotonic clock reading in seconds (for deadlines)."""
        ...

    @abstractmethod
    def now(self) -> datetime:
        """Return the current UTC time (timezone-aware)."""
        ...
