"""
Bidirectional CEX/DEX arbitrage evaluator.

For each direction the evaluator quotes every candidate size against the pool,
prices the CEX leg at top-of-book, deducts the exchange fee and gas, and keeps
the best net PnL. Evaluation is synchronous, performs no I/O and is fully
deterministic for identical inputs.

Directions:
- BUY_DEX_SELL_CEX: pay quote into the pool, receive base, sell base at the bid
- BUY_CEX_SELL_DEX: buy base at the ask, sell it into the pool for quote
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from cex.orderbook import BookSide, OrderBookTop
from dex.slippage import SlippageModel
from dex.types import PoolState, SwapSide, TradeQuote

from .costs import cex_fee, gas_cost_quote, net_after_costs
from .exceptions import InsufficientLiquidity, StaleData
from .interfaces import TimeProvider, get_time_provider
from .models import CostInputs, Direction, Opportunity
from .sizing import SizePolicy, SizingTarget

logger = logging.getLogger(__name__)


class ArbitrageEvaluator:
    """Turns one pool snapshot and one book snapshot into zero, one or two opportunities."""

    def __init__(
        self,
        slippage_model: SlippageModel,
        size_policy: SizePolicy,
        max_pool_age: float = 30.0,
        max_book_age: float = 5.0,
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        self.slippage_model = slippage_model
        self.size_policy = size_policy
        self.max_pool_age = max_pool_age
        self.max_book_age = max_book_age
        self.time_provider = time_provider or get_time_provider()
        self.metrics = metrics

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def check_freshness(self, pool_state: PoolState, book: OrderBookTop, now: float) -> None:
        """
        Raises:
            StaleData: If the pool or the book is older than its threshold
        """
        pool_age = pool_state.age(now)
        if pool_age > self.max_pool_age:
            raise StaleData(
                f"pool snapshot is {pool_age:.1f}s old",
                source="pool",
                age=pool_age,
                max_age=self.max_pool_age,
            )
        if book.is_stale(now, self.max_book_age):
            book_age = book.age(now)
            raise StaleData(
                f"order book is {book_age:.1f}s old",
                source="book",
                age=book_age,
                max_age=self.max_book_age,
            )

    # ------------------------------------------------------------------
    # Costs
    # ------------------------------------------------------------------

    @staticmethod
    def native_price(pool_state: PoolState, book: OrderBookTop, cost_inputs: CostInputs) -> Decimal:
        """Quote price of the gas asset: override, then book mid, then pool spot."""
        if cost_inputs.native_price_override is not None:
            return cost_inputs.native_price_override
        mid = book.mid_price
        if mid is not None:
            return mid
        return pool_state.spot_price()

    def gas_cost(self, pool_state: PoolState, book: OrderBookTop, cost_inputs: CostInputs) -> Decimal:
        if cost_inputs.gas_price_gwei is None:
            return Decimal(0)
        return gas_cost_quote(
            cost_inputs.gas_units,
            cost_inputs.gas_price_gwei,
            cost_inputs.gas_multiplier,
            self.native_price(pool_state, book, cost_inputs),
        )

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def candidate_sizes(
        self, cap: Decimal, target: Optional[SizingTarget] = None
    ) -> Tuple[Decimal, ...]:
        """Policy candidates capped by displayed depth, ascending and unique."""
        if cap <= 0:
            return ()
        return tuple(sorted({min(size, cap) for size in self.size_policy.candidates(target)}))

    @staticmethod
    def _is_better(candidate: Opportunity, best: Optional[Opportunity]) -> bool:
        if best is None:
            return True
        if candidate.net_pnl != best.net_pnl:
            return candidate.net_pnl > best.net_pnl
        return candidate.trade_size > best.trade_size

    # ------------------------------------------------------------------
    # Directions
    # ------------------------------------------------------------------

    def _buy_dex_sell_cex(
        self,
        pool_state: PoolState,
        book: OrderBookTop,
        cost_inputs: CostInputs,
        gas: Decimal,
        timestamp: float,
    ) -> Optional[Opportunity]:
        if book.best_bid is None:
            return None
        bid = book.best_bid.price
        spot = pool_state.spot_price()
        best = None
        target = SizingTarget(pool_state, SwapSide.BUY_BASE, bid, cost_inputs.cex_fee_bps)
        for size in self.candidate_sizes(book.max_tradable(BookSide.BID, bid), target):
            quote_in = size * spot
            try:
                quote = self.slippage_model.quote(pool_state, SwapSide.BUY_BASE, quote_in)
            except InsufficientLiquidity as e:
                logger.debug(f"[OPP] A skip size {size}: {e}")
                continue
            proceeds = quote.amount_out * bid
            gross = proceeds - quote_in
            fee = cex_fee(proceeds, cost_inputs.cex_fee_bps)
            candidate = self._build(
                Direction.BUY_DEX_SELL_CEX,
                quote.amount_out,
                gross,
                fee,
                gas,
                quote,
                bid,
                timestamp,
            )
            if self._is_better(candidate, best):
                best = candidate
        return best

    def _buy_cex_sell_dex(
        self,
        pool_state: PoolState,
        book: OrderBookTop,
        cost_inputs: CostInputs,
        gas: Decimal,
        timestamp: float,
    ) -> Optional[Opportunity]:
        if book.best_ask is None:
            return None
        ask = book.best_ask.price
        best = None
        target = SizingTarget(pool_state, SwapSide.SELL_BASE, ask, cost_inputs.cex_fee_bps)
        for size in self.candidate_sizes(book.max_tradable(BookSide.ASK, ask), target):
            try:
                quote = self.slippage_model.quote(pool_state, SwapSide.SELL_BASE, size)
            except InsufficientLiquidity as e:
                logger.debug(f"[OPP] B skip size {size}: {e}")
                continue
            cost = size * ask
            gross = quote.amount_out - cost
            fee = cex_fee(cost, cost_inputs.cex_fee_bps)
            candidate = self._build(
                Direction.BUY_CEX_SELL_DEX, size, gross, fee, gas, quote, ask, timestamp
            )
            if self._is_better(candidate, best):
                best = candidate
        return best

    @staticmethod
    def _build(
        direction: Direction,
        trade_size: Decimal,
        gross: Decimal,
        fee: Decimal,
        gas: Decimal,
        quote: TradeQuote,
        cex_price: Decimal,
        timestamp: float,
    ) -> Opportunity:
        return Opportunity(
            direction=direction,
            trade_size=trade_size,
            gross_pnl=gross,
            net_pnl=net_after_costs(gross, fee, gas),
            cex_fee=fee,
            gas_cost=gas,
            dex_quote=quote,
            cex_price_used=cex_price,
            timestamp=timestamp,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def best_candidates(
        self,
        pool_state: PoolState,
        book: OrderBookTop,
        cost_inputs: CostInputs,
    ) -> List[Opportunity]:
        """Best candidate per direction regardless of threshold, stamped with wall-clock time."""
        gas = self.gas_cost(pool_state, book, cost_inputs)
        timestamp = self.time_provider.current_timestamp()
        results = []
        for direction_fn in (self._buy_dex_sell_cex, self._buy_cex_sell_dex):
            best = direction_fn(pool_state, book, cost_inputs, gas, timestamp)
            if best is not None:
                results.append(best)
        return results

    def evaluate(
        self,
        pool_state: PoolState,
        book: OrderBookTop,
        cost_inputs: CostInputs,
        now: Optional[float] = None,
    ) -> List[Opportunity]:
        """
        Evaluate both directions against the current snapshots.

        Args:
            pool_state: Pool snapshot
            book: Order book snapshot
            cost_inputs: Fees, gas and threshold for this tick
            now: Monotonic time used for staleness; defaults to the time provider

        Returns:
            Opportunities with net_pnl > min_pnl, at most one per direction
        """
        if now is None:
            now = self.time_provider.monotonic()

        try:
            self.check_freshness(pool_state, book, now)
        except StaleData as e:
            logger.debug(f"[OPP] skipping tick: {e}")
            if self.metrics is not None:
                self.metrics.record_stale_skip(e.source)
            return []

        candidates = self.best_candidates(pool_state, book, cost_inputs)
        if self.metrics is not None:
            for candidate in candidates:
                self.metrics.record_best_net(candidate.direction.value, candidate.net_pnl)

        return [opp for opp in candidates if opp.net_pnl > cost_inputs.min_pnl]
