"""
Feed tasks: the streaming order-book feed and the fixed-interval chain pollers.

Each task owns its error handling. A failing feed logs, moves to BACKOFF (book)
or keeps the last good snapshot (pollers), and never raises into the
orchestrator. Every remote call is bounded by a timeout; a timeout is handled
exactly like a stream error.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

from cex.orderbook import OrderBookState
from dex.types import PoolState

from .feed_state import BackoffPolicy, FeedState, FeedStateMachine
from .interfaces import TimeProvider, get_time_provider
from .state import SnapshotSlot

logger = logging.getLogger(__name__)


@runtime_checkable
class BookSource(Protocol):
    """Transport for a top-of-book stream."""

    async def connect(self) -> None:
        ...

    async def subscribe(self) -> None:
        ...

    async def next_update(self) -> Any:
        """Return the next update exposing ``levels() -> (bid, ask)``."""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class PoolReader(Protocol):
    async def fetch(self) -> PoolState:
        ...


@runtime_checkable
class GasReader(Protocol):
    async def fetch(self) -> Decimal:
        """Gas price in gwei."""
        ...


async def sleep_or_shutdown(shutdown: asyncio.Event, delay: float) -> bool:
    """Sleep up to ``delay`` seconds; returns True if shutdown was requested."""
    try:
        await asyncio.wait_for(shutdown.wait(), delay)
    except asyncio.TimeoutError:
        return False
    return True


class BookFeed:
    """Drives a BookSource through the feed state machine into an OrderBookState."""

    def __init__(
        self,
        source: BookSource,
        book: OrderBookState,
        backoff: Optional[BackoffPolicy] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        name: str = "cex",
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        self.source = source
        self.book = book
        self.backoff = backoff or BackoffPolicy()
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.metrics = metrics
        self.machine = FeedStateMachine(
            name,
            time_provider=time_provider or get_time_provider(),
            on_transition=self._on_transition,
        )
        self.messages = 0
        self.reconnects = 0

    @property
    def state(self) -> FeedState:
        return self.machine.state

    def _on_transition(self, name: str, previous: FeedState, target: FeedState) -> None:
        if self.metrics is not None:
            self.metrics.record_feed_state(name, target)

    def _apply(self, update: Any) -> None:
        bid, ask = update.levels()
        self.book.apply_update(bid, ask)
        self.messages += 1

    async def _close_source(self) -> None:
        try:
            await asyncio.wait_for(self.source.close(), self.connect_timeout)
        except Exception as e:
            logger.debug(f"[CEX] error closing source: {e}", exc_info=True)

    async def _stream(self, shutdown: asyncio.Event) -> None:
        self.machine.transition(FeedState.CONNECTING)
        await asyncio.wait_for(self.source.connect(), self.connect_timeout)
        self.machine.transition(FeedState.SUBSCRIBED)
        await asyncio.wait_for(self.source.subscribe(), self.connect_timeout)

        update = await asyncio.wait_for(self.source.next_update(), self.read_timeout)
        self.machine.transition(FeedState.STREAMING, "first message")
        self._apply(update)

        while not shutdown.is_set():
            update = await asyncio.wait_for(self.source.next_update(), self.read_timeout)
            self._apply(update)
            self.backoff.note_streaming(self.machine.time_in_state())

    async def run(self, shutdown: asyncio.Event) -> None:
        """Stream until shutdown, reconnecting with backoff on any failure."""
        while not shutdown.is_set():
            try:
                await self._stream(shutdown)
            except Exception as e:
                logger.warning(
                    f"[CEX] {self.machine.name} feed error in {self.state.value}: "
                    f"{type(e).__name__}: {e}"
                )
                logger.debug("[CEX] feed error details", exc_info=True)
            finally:
                await self._close_source()

            if shutdown.is_set():
                break

            if self.state is FeedState.STREAMING:
                self.backoff.note_streaming(self.machine.time_in_state())
            self.machine.transition(FeedState.BACKOFF)
            self.book.clear()
            self.reconnects += 1
            if self.metrics is not None:
                self.metrics.record_reconnect(self.machine.name)

            delay = self.backoff.next_delay()
            logger.info(f"[CEX] reconnecting in {delay:.1f}s")
            if await sleep_or_shutdown(shutdown, delay):
                break


class Poller:
    """Fixed-interval poll of an async reader into a SnapshotSlot."""

    tag = "[POLL]"

    def __init__(
        self,
        reader: Any,
        slot: SnapshotSlot,
        interval: float,
        timeout: float = 10.0,
        metrics=None,
    ):
        self.reader = reader
        self.slot = slot
        self.interval = interval
        self.timeout = timeout
        self.metrics = metrics
        self.failures = 0

    def _describe(self, value: Any) -> str:
        return str(value)

    async def poll_once(self) -> bool:
        """Read once; on failure keep the last good snapshot."""
        try:
            value = await asyncio.wait_for(self.reader.fetch(), self.timeout)
        except Exception as e:
            self.failures += 1
            logger.warning(
                f"{self.tag} {self.slot.name} poll failed, keeping last snapshot: "
                f"{type(e).__name__}: {e}"
            )
            if self.metrics is not None:
                self.metrics.record_poll_failure(self.slot.name)
            return False
        self.slot.install(value)
        logger.debug(f"{self.tag} {self._describe(value)}")
        return True

    async def run(self, shutdown: asyncio.Event) -> None:
        while not shutdown.is_set():
            await self.poll_once()
            if await sleep_or_shutdown(shutdown, self.interval):
                break


class PoolPoller(Poller):
    tag = "[DEX]"

    def __init__(self, reader: PoolReader, slot: SnapshotSlot, interval: float = 5.0, **kwargs):
        super().__init__(reader, slot, interval, **kwargs)

    def _describe(self, value: PoolState) -> str:
        return f"tick={value.tick} liquidity={value.liquidity} spot={value.spot_price():.4f}"


class GasPoller(Poller):
    tag = "[GAS]"

    def __init__(self, reader: GasReader, slot: SnapshotSlot, interval: float = 12.0, **kwargs):
        super().__init__(reader, slot, interval, **kwargs)

    def _describe(self, value: Decimal) -> str:
        return f"gas price {value:.3f} gwei"
