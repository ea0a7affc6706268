"""
Feed orchestration: runs the book feed, the chain pollers and the evaluation
tick as concurrent asyncio tasks sharing snapshot slots.

The evaluator runs on its own fixed interval (optionally also woken by book
updates) and always prices against the most recent snapshots. Shutdown is a
shared asyncio.Event; tasks get ``shutdown_grace`` seconds to return before
they are cancelled.
"""

import asyncio
import logging
import time
from typing import List, Optional

from cex.orderbook import OrderBookState, OrderBookTop
from dex.types import PoolState

from .evaluator import ArbitrageEvaluator
from .feeds import BookFeed, GasPoller, PoolPoller, sleep_or_shutdown
from .interfaces import TimeProvider, get_time_provider
from .models import CostInputs, Opportunity
from .sinks import LoggingSink, OpportunitySink
from .state import SnapshotSlot
from .utils import format_duration

logger = logging.getLogger(__name__)


def _level_price(level) -> str:
    return "-" if level is None else str(level.price)


class FeedOrchestrator:
    """Owns the detector's concurrent lifecycle."""

    def __init__(
        self,
        evaluator: ArbitrageEvaluator,
        book: OrderBookState,
        pool_slot: SnapshotSlot,
        gas_slot: SnapshotSlot,
        cost_inputs: CostInputs,
        sink: Optional[OpportunitySink] = None,
        book_feed: Optional[BookFeed] = None,
        pool_poller: Optional[PoolPoller] = None,
        gas_poller: Optional[GasPoller] = None,
        evaluation_interval: float = 1.0,
        shutdown_grace: float = 5.0,
        heartbeat_every: int = 5,
        wake_on_book_update: bool = False,
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        self.evaluator = evaluator
        self.book = book
        self.pool_slot = pool_slot
        self.gas_slot = gas_slot
        self.cost_inputs = cost_inputs
        self.sink = sink or LoggingSink()
        self.book_feed = book_feed
        self.pool_poller = pool_poller
        self.gas_poller = gas_poller
        self.evaluation_interval = evaluation_interval
        self.shutdown_grace = shutdown_grace
        self.heartbeat_every = max(1, heartbeat_every)
        self.wake_on_book_update = wake_on_book_update
        self.time_provider = time_provider or get_time_provider()
        self.metrics = metrics

        self.shutdown = asyncio.Event()
        self.ticks = 0
        self.evaluations = 0
        self.opportunities_found = 0
        self._max_evaluations: Optional[int] = None
        self._started_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Evaluation tick
    # ------------------------------------------------------------------

    def current_cost_inputs(self) -> Optional[CostInputs]:
        """Cost inputs with the latest gas price, or None while gas is unknown."""
        if self.cost_inputs.gas_price_gwei is not None:
            return self.cost_inputs
        gas = self.gas_slot.snapshot()
        if gas is None:
            return None
        return self.cost_inputs.with_gas_price(gas)

    def _heartbeat(self, pool: PoolState, book: OrderBookTop, costs: CostInputs) -> None:
        gas = self.evaluator.gas_cost(pool, book, costs)
        logger.info(
            f"[HEARTBEAT] no opps above threshold | dex={pool.spot_price():.2f} "
            f"bid={_level_price(book.best_bid)} ask={_level_price(book.best_ask)} "
            f"gas={costs.gas_price_gwei:.3f}gwei cex_fee={costs.cex_fee_bps}bps "
            f"dex_fee={pool.fee_bps}bps gas_cost=${gas:.2f}"
        )

    def tick(self) -> List[Opportunity]:
        """Run one evaluation against the current snapshots."""
        self.ticks += 1
        pool = self.pool_slot.snapshot()
        book = self.book.snapshot()
        costs = self.current_cost_inputs()

        if pool is None or costs is None or book.is_empty:
            if self.ticks % self.heartbeat_every == 0:
                logger.info("[HEARTBEAT] waiting for feeds (dex, cex or gas not ready)")
            return []

        now = self.time_provider.monotonic()
        started = time.perf_counter()
        opportunities = self.evaluator.evaluate(pool, book, costs, now=now)
        self.evaluations += 1

        if self.metrics is not None:
            self.metrics.record_evaluation(time.perf_counter() - started)
            self.metrics.update_snapshot_age("pool", pool.age(now))
            self.metrics.update_snapshot_age("book", book.age(now))
            for opp in opportunities:
                self.metrics.record_opportunity(opp.direction.value)

        if opportunities:
            self.opportunities_found += len(opportunities)
            self.sink(opportunities)
        elif self.ticks % self.heartbeat_every == 0:
            self._heartbeat(pool, book, costs)
        return opportunities

    async def _evaluation_loop(self) -> None:
        while not self.shutdown.is_set():
            self.tick()
            if self._max_evaluations is not None and self.evaluations >= self._max_evaluations:
                self.stop()
                break
            if self.wake_on_book_update:
                await self.book.wait_for_update(self.evaluation_interval)
            elif await sleep_or_shutdown(self.shutdown, self.evaluation_interval):
                break

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Request shutdown of all tasks."""
        if not self.shutdown.is_set():
            logger.info("[INIT] shutdown requested")
        self.shutdown.set()

    async def run(self, max_evaluations: Optional[int] = None) -> None:
        """
        Run every feed and the evaluator until stop() or a task crash.

        Args:
            max_evaluations: Stop after this many completed evaluations

        Raises:
            Exception: The first unexpected error raised by a task, after cleanup
        """
        self._max_evaluations = max_evaluations
        self._started_at = self.time_provider.monotonic()
        coros = []
        if self.book_feed is not None:
            coros.append(("book_feed", self.book_feed.run(self.shutdown)))
        if self.pool_poller is not None:
            coros.append(("pool_poller", self.pool_poller.run(self.shutdown)))
        if self.gas_poller is not None:
            coros.append(("gas_poller", self.gas_poller.run(self.shutdown)))
        coros.append(("evaluator", self._evaluation_loop()))

        tasks = [asyncio.create_task(coro, name=name) for name, coro in coros]
        shutdown_waiter = asyncio.create_task(self.shutdown.wait(), name="shutdown")
        logger.info(f"[INIT] started {len(tasks)} tasks")

        failure: Optional[BaseException] = None
        try:
            done, _ = await asyncio.wait(
                [shutdown_waiter, *tasks], return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is not shutdown_waiter and not task.cancelled() and task.exception():
                    failure = task.exception()
                    logger.error(
                        f"Task {task.get_name()} crashed: {failure}", exc_info=failure
                    )
            self.stop()
        finally:
            self.shutdown.set()
            await self._drain(tasks)
            shutdown_waiter.cancel()
            await asyncio.gather(shutdown_waiter, return_exceptions=True)

        if failure is not None:
            raise failure

    async def _drain(self, tasks) -> None:
        pending = [task for task in tasks if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.shutdown_grace)
            for task in still_running:
                logger.warning(f"[INIT] cancelling {task.get_name()} after grace period")
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        uptime = self.time_provider.monotonic() - (self._started_at or 0.0)
        logger.info(
            f"[INIT] stopped after {format_duration(uptime)}: {self.evaluations} "
            f"evaluations, {self.opportunities_found} opportunities"
        )
