"""Time operations abstraction for testing."""

from lattice.core.time.abc import Time
from lattice.core.time.real import RealTime

__all__ = ["RealTime", "Time"]
