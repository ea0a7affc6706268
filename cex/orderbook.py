"""
Top-of-book state for the centralized exchange feed.

OrderBookTop is an immutable snapshot. OrderBookState is the single-writer,
multi-reader slot holding the current snapshot: the feed builds a complete new
record and swaps the reference under a lock held only for the swap, readers take
the reference and work outside the lock.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple

from arbitrage_detector.exceptions import CrossedBook, InvalidInput
from arbitrage_detector.interfaces import TimeProvider, get_time_provider
from arbitrage_detector.utils import to_decimal

logger = logging.getLogger(__name__)

# Log every Nth rejected update after the first
REJECTION_LOG_EVERY = 100


class BookSide(str, Enum):
    BID = "bid"
    ASK = "ask"


@dataclass(frozen=True)
class BookLevel:
    """
    One price level of the book.

    Attributes:
        price: Level price in quote currency (> 0)
        quantity: Displayed base quantity (>= 0)
    """

    price: Decimal
    quantity: Decimal

    @classmethod
    def of(cls, price: Any, quantity: Any) -> "BookLevel":
        level = cls(to_decimal(price, "price"), to_decimal(quantity, "quantity"))
        if level.price <= 0:
            raise InvalidInput("price must be positive", field="price", value=price)
        if level.quantity < 0:
            raise InvalidInput(
                "quantity must be non-negative", field="quantity", value=quantity
            )
        return level


@dataclass(frozen=True)
class OrderBookTop:
    """
    Immutable top-of-book snapshot.

    Attributes:
        best_bid: Best bid level, None right after (re)connect
        best_ask: Best ask level, None right after (re)connect
        updated_at: Monotonic timestamp of the accepted update
        sequence: Number of accepted updates so far
    """

    best_bid: Optional[BookLevel] = None
    best_ask: Optional[BookLevel] = None
    updated_at: float = 0.0
    sequence: int = 0

    @property
    def is_complete(self) -> bool:
        return self.best_bid is not None and self.best_ask is not None

    @property
    def is_empty(self) -> bool:
        return self.best_bid is None and self.best_ask is None

    @property
    def mid_price(self) -> Optional[Decimal]:
        if not self.is_complete:
            return None
        return (self.best_bid.price + self.best_ask.price) / 2

    @property
    def spread_bps(self) -> Optional[Decimal]:
        mid = self.mid_price
        if mid is None:
            return None
        return (self.best_ask.price - self.best_bid.price) / mid * Decimal(10000)

    def age(self, now: float) -> float:
        return max(0.0, now - self.updated_at)

    def is_stale(self, now: float, max_age: float) -> bool:
        """True when the book has never updated or is older than max_age seconds."""
        if self.sequence == 0:
            return True
        return self.age(now) > max_age

    def levels(self, side: BookSide) -> Tuple[BookLevel, ...]:
        """Known levels of one side, best first."""
        level = self.best_bid if side is BookSide.BID else self.best_ask
        return (level,) if level is not None else ()

    def max_tradable(self, side: BookSide, price_limit: Optional[Any] = None) -> Decimal:
        """
        Quantity fillable against ``side`` at or better than ``price_limit``.

        Bids count when price >= limit, asks when price <= limit. Without a
        limit every known level counts.
        """
        limit = to_decimal(price_limit, "price_limit") if price_limit is not None else None
        total = Decimal(0)
        for level in self.levels(side):
            if limit is not None:
                if side is BookSide.BID and level.price < limit:
                    break
                if side is BookSide.ASK and level.price > limit:
                    break
            total += level.quantity
        return total


def check_not_crossed(bid: Optional[BookLevel], ask: Optional[BookLevel]) -> None:
    """
    Raises:
        CrossedBook: If both sides are present and bid >= ask
    """
    if bid is not None and ask is not None and bid.price >= ask.price:
        raise CrossedBook(
            f"crossed book: bid {bid.price} >= ask {ask.price}",
            bid=bid.price,
            ask=ask.price,
        )


class OrderBookState:
    """Shared slot holding the current OrderBookTop."""

    def __init__(self, time_provider: Optional[TimeProvider] = None, metrics=None):
        self._time = time_provider or get_time_provider()
        self._metrics = metrics
        self._lock = threading.Lock()
        self._top = OrderBookTop()
        self._changed = asyncio.Event()
        self.rejected_count = 0

    def apply_update(self, bid: Optional[BookLevel], ask: Optional[BookLevel]) -> bool:
        """
        Replace both sides atomically.

        Crossed or locked books and non-positive prices are logged, counted and
        discarded; the prior snapshot stays in place.

        Returns:
            True if the update was installed
        """
        try:
            for level in (bid, ask):
                if level is not None and level.price <= 0:
                    raise InvalidInput(
                        f"non-positive price {level.price}", field="price", value=level.price
                    )
            check_not_crossed(bid, ask)
        except (CrossedBook, InvalidInput) as e:
            self._reject(e)
            return False

        now = self._time.monotonic()
        with self._lock:
            self._top = OrderBookTop(
                best_bid=bid,
                best_ask=ask,
                updated_at=now,
                sequence=self._top.sequence + 1,
            )
        self._changed.set()
        return True

    def _reject(self, error: Exception) -> None:
        self.rejected_count += 1
        if self._metrics is not None:
            self._metrics.record_book_rejected(type(error).__name__)
        if self.rejected_count == 1 or self.rejected_count % REJECTION_LOG_EVERY == 0:
            logger.warning(
                f"[CEX] rejected book update ({self.rejected_count} total): {error}"
            )

    def snapshot(self) -> OrderBookTop:
        with self._lock:
            return self._top

    def max_tradable(self, side: BookSide, price_limit: Optional[Any] = None) -> Decimal:
        return self.snapshot().max_tradable(side, price_limit)

    def clear(self) -> None:
        """Mark both sides absent, keeping the update sequence."""
        with self._lock:
            self._top = OrderBookTop(
                updated_at=self._top.updated_at, sequence=self._top.sequence
            )

    async def wait_for_update(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until an update is installed after the last wait.

        Returns:
            True if an update arrived, False on timeout
        """
        try:
            await asyncio.wait_for(self._changed.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        self._changed.clear()
        return True
