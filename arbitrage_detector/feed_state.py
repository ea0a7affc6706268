"""
Connection state machine and backoff policy for push feeds.

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> STREAMING
                        ^              |            |
                        |              v            v
                        +--------- BACKOFF <--------+

Connect or subscribe failures also move to BACKOFF; every transition is logged
and reported to metrics.
"""

import logging
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from .exceptions import ConfigurationError, IllegalTransition
from .interfaces import TimeProvider, get_time_provider

logger = logging.getLogger(__name__)


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    BACKOFF = "backoff"


# Numeric encoding for the feed state gauge
FEED_STATE_CODES: Dict[FeedState, int] = {
    FeedState.DISCONNECTED: 0,
    FeedState.CONNECTING: 1,
    FeedState.SUBSCRIBED: 2,
    FeedState.STREAMING: 3,
    FeedState.BACKOFF: 4,
}

ALLOWED_TRANSITIONS: Dict[FeedState, FrozenSet[FeedState]] = {
    FeedState.DISCONNECTED: frozenset({FeedState.CONNECTING}),
    FeedState.CONNECTING: frozenset({FeedState.SUBSCRIBED, FeedState.BACKOFF}),
    FeedState.SUBSCRIBED: frozenset({FeedState.STREAMING, FeedState.BACKOFF}),
    FeedState.STREAMING: frozenset({FeedState.BACKOFF}),
    FeedState.BACKOFF: frozenset({FeedState.CONNECTING}),
}


class BackoffPolicy:
    """
    Exponential reconnect delay with a ceiling.

    The delay resets to ``base_delay`` once the feed has been streaming for
    ``reset_after`` seconds.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        factor: float = 2.0,
        reset_after: float = 60.0,
    ):
        if base_delay <= 0 or max_delay < base_delay:
            raise ConfigurationError(
                f"invalid backoff delays: base={base_delay} max={max_delay}"
            )
        if factor < 1:
            raise ConfigurationError(f"backoff factor must be >= 1: {factor}")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.factor = factor
        self.reset_after = reset_after
        self.attempts = 0

    def next_delay(self) -> float:
        delay = min(self.max_delay, self.base_delay * self.factor**self.attempts)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0

    def note_streaming(self, streaming_for: float) -> bool:
        """Reset when streaming has been sustained; returns True if it reset."""
        if self.attempts and streaming_for >= self.reset_after:
            self.reset()
            return True
        return False


class FeedStateMachine:
    """Tracks one feed's connection state and enforces legal transitions."""

    def __init__(
        self,
        name: str,
        time_provider: Optional[TimeProvider] = None,
        on_transition: Optional[Callable[[str, FeedState, FeedState], None]] = None,
    ):
        self.name = name
        self.state = FeedState.DISCONNECTED
        self.time_provider = time_provider or get_time_provider()
        self.entered_at = self.time_provider.monotonic()
        self.history: List[Tuple[FeedState, FeedState]] = []
        self._on_transition = on_transition

    def can_transition(self, target: FeedState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: FeedState, reason: str = "") -> None:
        """
        Raises:
            IllegalTransition: If target is not reachable from the current state
        """
        if not self.can_transition(target):
            raise IllegalTransition(
                f"{self.name}: {self.state.value} -> {target.value} is not allowed",
                from_state=self.state.value,
                to_state=target.value,
            )
        previous = self.state
        self.state = target
        self.entered_at = self.time_provider.monotonic()
        self.history.append((previous, target))
        suffix = f" ({reason})" if reason else ""
        logger.info(f"[CEX] {self.name} {previous.value} -> {target.value}{suffix}")
        if self._on_transition is not None:
            self._on_transition(self.name, previous, target)

    def time_in_state(self) -> float:
        return self.time_provider.monotonic() - self.entered_at
