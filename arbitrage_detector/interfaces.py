"""
Dependency injection interfaces for improved testability and modularity.

Provides lightweight protocols for the clock so that staleness checks,
backoff timing and opportunity timestamps can be driven deterministically
in tests instead of reading the system clock.
"""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...

    def monotonic(self) -> float:
        """Get a monotonic timestamp in seconds."""
        ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()

    def monotonic(self) -> float:
        """Get a monotonic timestamp in seconds."""
        return time.monotonic()


class DeterministicTimeProvider:
    """Deterministic time provider for testing."""

    def __init__(self, start_time: float = 1640995200.0, start_monotonic: float = 1000.0):
        self._current_time = start_time
        self._monotonic = start_monotonic

    def current_timestamp(self) -> float:
        """Get current timestamp."""
        return self._current_time

    def monotonic(self) -> float:
        """Get current monotonic reading."""
        return self._monotonic

    def advance_time(self, seconds: float) -> None:
        """Manually advance both clocks by specified seconds."""
        self._current_time += seconds
        self._monotonic += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current wall-clock time to specific timestamp."""
        self._current_time = timestamp


# Default provider - can be overridden for testing
_default_time_provider: TimeProvider = SystemTimeProvider()


def get_time_provider() -> TimeProvider:
    """Get the current time provider instance."""
    return _default_time_provider


def set_time_provider(provider: TimeProvider) -> None:
    """Set the global time provider (mainly for testing)."""
    global _default_time_provider
    _default_time_provider = provider

