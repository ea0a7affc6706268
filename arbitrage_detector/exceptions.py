"""
Exception hierarchy for the CEX/DEX arbitrage detector.

Provides specific exception types for the error categories of the pricing
engine and its feeds so callers can decide between "skip", "retry" and
"fail fast" without string matching.
"""

from typing import Optional, Dict, Any


class ArbitrageDetectorError(Exception):
    """Base exception for all arbitrage detector errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageDetectorError):
    """Raised when there are configuration-related issues."""

    pass


class InvalidInput(ArbitrageDetectorError):
    """
    Raised when a pure function receives malformed numeric input.

    Always a programming or configuration error; never retried.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class InsufficientLiquidity(ArbitrageDetectorError):
    """Raised when a trade size exceeds the modeled depth of the pool."""

    def __init__(
        self,
        message: str,
        requested: Optional[Any] = None,
        tick_excursion: Optional[int] = None,
        max_tick_excursion: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.requested = requested
        self.tick_excursion = tick_excursion
        self.max_tick_excursion = max_tick_excursion


class StaleData(ArbitrageDetectorError):
    """Raised when a snapshot is older than its staleness threshold."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        age: Optional[float] = None,
        max_age: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.age = age
        self.max_age = max_age


class FeedError(ArbitrageDetectorError):
    """Raised when a feed's transport or protocol fails."""

    def __init__(
        self,
        message: str,
        feed: Optional[str] = None,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.feed = feed
        self.endpoint = endpoint


class CrossedBook(ArbitrageDetectorError):
    """Raised when an order book update has bid >= ask."""

    def __init__(
        self,
        message: str,
        bid: Optional[Any] = None,
        ask: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.bid = bid
        self.ask = ask


class IllegalTransition(ArbitrageDetectorError):
    """Raised when a feed state machine is asked for a transition it does not allow."""

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.from_state = from_state
        self.to_state = to_state
