"""
Unit tests for the bidirectional evaluator.

Scenarios use the reference USDC/WETH pool with ample liquidity, a 1 bp
exchange fee, the pool's 5 bp LP fee and ~2 USDC of gas.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from arbitrage_detector.evaluator import ArbitrageEvaluator
from arbitrage_detector.exceptions import StaleData
from arbitrage_detector.models import CostInputs, Direction
from arbitrage_detector.sizing import FixedSizePolicy, LadderSizePolicy, TargetPriceSizePolicy
from cex.orderbook import BookLevel, OrderBookTop
from dex.slippage import ConstantImpactModel, TickWalkModel

NOW = 1000.0


@pytest.fixture
def costs():
    # 200000 gas at 10 gwei, priced at the book mid (~1000.5) -> ~2.001 USDC
    return CostInputs(
        cex_fee_bps=Decimal("1"),
        gas_units=200000,
        gas_price_gwei=Decimal("10"),
        gas_multiplier=Decimal("1"),
        min_pnl=Decimal("0"),
    )


@pytest.fixture
def evaluator(clock):
    return ArbitrageEvaluator(
        ConstantImpactModel(), FixedSizePolicy("1"), time_provider=clock
    )


class TestScenarios:
    def test_sub_cent_spread_yields_nothing(self, evaluator, make_pool, make_book, costs):
        """Bid 1000 / ask 1001 against a 1000.50 pool is not an opportunity."""
        pool = make_pool("1000.50")
        book = make_book("1000.00", "1001.00").snapshot()
        assert evaluator.evaluate(pool, book, costs, now=NOW) == []

        # Both directions were evaluated and lost money
        candidates = evaluator.best_candidates(pool, book, costs)
        assert {c.direction for c in candidates} == set(Direction)
        assert all(c.net_pnl < 0 for c in candidates)

    def test_cheaper_pool_gives_buy_dex_sell_cex(
        self, evaluator, clock, make_pool, make_book, costs
    ):
        pool = make_pool("995.00")
        book = make_book("1000.00", "1001.00").snapshot()

        opportunities = evaluator.evaluate(pool, book, costs, now=NOW)

        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.direction is Direction.BUY_DEX_SELL_CEX
        assert opp.net_pnl > 0
        # 0.9995 ETH sold at 1000 for 995 paid: 4.5 gross, 0.09995 fee, 2.001 gas
        assert abs(opp.gross_pnl - Decimal("4.5")) < Decimal("0.001")
        assert abs(opp.cex_fee - Decimal("0.09995")) < Decimal("0.0001")
        assert abs(opp.gas_cost - Decimal("2.001")) < Decimal("1e-9")
        assert abs(opp.net_pnl - Decimal("2.399")) < Decimal("0.001")
        assert opp.net_pnl == opp.gross_pnl - opp.cex_fee - opp.gas_cost
        assert opp.cex_price_used == Decimal("1000.00")
        assert abs(opp.trade_size - Decimal("0.9995")) < Decimal("1e-6")
        assert opp.timestamp == clock.current_timestamp()

    def test_richer_pool_gives_buy_cex_sell_dex(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("1010.00")
        book = make_book("1000.00", "1001.00").snapshot()

        opportunities = evaluator.evaluate(pool, book, costs, now=NOW)

        assert [o.direction for o in opportunities] == [Direction.BUY_CEX_SELL_DEX]
        opp = opportunities[0]
        assert opp.trade_size == Decimal("1")
        assert opp.cex_price_used == Decimal("1001.00")
        assert opp.net_pnl > 0

    def test_identical_prices_yield_nothing(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("1000.00")
        book = make_book("999.99", "1000.01").snapshot()
        assert evaluator.evaluate(pool, book, costs, now=NOW) == []

    def test_threshold_is_strict(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book("1000.00", "1001.00").snapshot()
        best = evaluator.evaluate(pool, book, costs, now=NOW)[0]

        at_threshold = CostInputs(
            cex_fee_bps=costs.cex_fee_bps,
            gas_units=costs.gas_units,
            gas_price_gwei=costs.gas_price_gwei,
            min_pnl=best.net_pnl,
        )
        assert evaluator.evaluate(pool, book, at_threshold, now=NOW) == []

    def test_deterministic(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book().snapshot()
        first = evaluator.evaluate(pool, book, costs, now=NOW)
        second = evaluator.evaluate(pool, book, costs, now=NOW)
        assert first == second

    def test_tick_walk_model_agrees(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(TickWalkModel(), FixedSizePolicy("1"), time_provider=clock)
        pool = make_pool("995.00")
        opportunities = evaluator.evaluate(pool, make_book().snapshot(), costs, now=NOW)
        assert [o.direction for o in opportunities] == [Direction.BUY_DEX_SELL_CEX]
        assert opportunities[0].dex_quote.model == "tick_walk"

    def test_tick_walk_skips_sizes_below_one_raw_unit(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(TickWalkModel(), FixedSizePolicy("1"), time_provider=clock)
        pool = make_pool("995.00")
        # 1e-10 ETH of bid depth is 1e-7 USDC into the pool, under one raw unit
        book = make_book(bid_qty="0.0000000001").snapshot()

        candidates = evaluator.best_candidates(pool, book, costs)

        assert [c.direction for c in candidates] == [Direction.BUY_CEX_SELL_DEX]

    def test_timestamp_is_wall_clock(self, evaluator, clock, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book().snapshot()
        clock.set_time(1700000000.0)

        opp = evaluator.evaluate(pool, book, costs, now=NOW)[0]

        assert opp.timestamp == 1700000000.0
        assert opp.to_dict()["timestamp"] == 1700000000.0


class TestStaleness:
    def test_stale_pool_skips_tick(self, clock, make_pool, make_book, costs):
        metrics = MagicMock()
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), FixedSizePolicy("1"), max_pool_age=30.0,
            time_provider=clock, metrics=metrics,
        )
        pool = make_pool("995.00", observed_at=NOW - 31)
        assert evaluator.evaluate(pool, make_book().snapshot(), costs, now=NOW) == []
        metrics.record_stale_skip.assert_called_once_with("pool")

    def test_stale_book_skips_tick(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book().snapshot()
        assert evaluator.evaluate(pool, book, costs, now=NOW + 6) == []

    def test_never_updated_book_is_stale(self, evaluator, make_pool, costs):
        with pytest.raises(StaleData) as exc_info:
            evaluator.check_freshness(make_pool(), OrderBookTop(), NOW)
        assert exc_info.value.source == "book"

    def test_default_now_comes_from_time_provider(self, evaluator, clock, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book().snapshot()
        assert len(evaluator.evaluate(pool, book, costs)) == 1
        clock.advance_time(60)
        assert evaluator.evaluate(pool, book, costs) == []


class TestCostsAndSizing:
    def test_missing_side_only_evaluates_other_direction(self, evaluator, make_pool, costs):
        pool = make_pool("995.00")
        book = OrderBookTop(
            best_bid=BookLevel.of("1000", "10"), best_ask=None, updated_at=NOW, sequence=1
        )
        opportunities = evaluator.evaluate(pool, book, costs, now=NOW)
        assert [o.direction for o in opportunities] == [Direction.BUY_DEX_SELL_CEX]
        # No mid: gas priced at the pool spot
        assert abs(opportunities[0].gas_cost - Decimal("1.99")) < Decimal("1e-9")

    def test_unknown_gas_price_costs_nothing(self, evaluator, make_pool, make_book):
        costs = CostInputs(cex_fee_bps=Decimal("1"), gas_units=200000, gas_price_gwei=None)
        pool = make_pool()
        book = make_book().snapshot()
        assert evaluator.gas_cost(pool, book, costs) == 0

    def test_native_price_override(self, evaluator, make_pool, make_book, costs):
        overridden = CostInputs(
            cex_fee_bps=Decimal("1"),
            gas_units=200000,
            gas_price_gwei=Decimal("10"),
            native_price_override=Decimal("2000"),
        )
        pool = make_pool()
        book = make_book().snapshot()
        assert evaluator.gas_cost(pool, book, overridden) == Decimal("4")

    def test_size_capped_by_displayed_depth(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), LadderSizePolicy("0.1", "5", steps=6), time_provider=clock
        )
        pool = make_pool("995.00")
        book = make_book("1000.00", "1001.00", bid_qty="2").snapshot()

        opportunities = evaluator.evaluate(pool, book, costs, now=NOW)

        assert len(opportunities) == 1
        # Profit grows with size, so the ladder runs into the 2 ETH bid
        assert Decimal("1.99") < opportunities[0].trade_size <= Decimal("2")

    def test_target_price_policy_sizes_to_the_bid(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), TargetPriceSizePolicy(max_size="50"), time_provider=clock
        )
        pool = make_pool("995.00", liquidity=10**17)
        book = make_book("1000.00", "1001.00", bid_qty="20").snapshot()

        opportunities = evaluator.evaluate(pool, book, costs, now=NOW)

        # Only the cheap-pool direction has an edge to size into
        assert [o.direction for o in opportunities] == [Direction.BUY_DEX_SELL_CEX]
        assert Decimal("5") < opportunities[0].trade_size < Decimal("7.05")
        assert opportunities[0].net_pnl > 0

    def test_target_price_policy_is_capped_by_depth(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), TargetPriceSizePolicy(), time_provider=clock
        )
        pool = make_pool("995.00", liquidity=10**17)
        book = make_book("1000.00", "1001.00", bid_qty="2").snapshot()

        opp = evaluator.evaluate(pool, book, costs, now=NOW)[0]

        assert opp.trade_size < Decimal("2")

    def test_candidate_sizes(self, clock):
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), LadderSizePolicy("1", "4", steps=3), time_provider=clock
        )
        assert evaluator.candidate_sizes(Decimal("10")) == (Decimal("1"), Decimal("2"), Decimal("4"))
        assert evaluator.candidate_sizes(Decimal("1.5")) == (Decimal("1"), Decimal("1.5"))
        assert evaluator.candidate_sizes(Decimal("0")) == ()

    def test_sizes_beyond_pool_depth_are_skipped(self, clock, make_pool, make_book, costs):
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), LadderSizePolicy("1", "5", steps=2), time_provider=clock
        )
        # ~31 ETH of virtual depth: 1 ETH quotes, 5 ETH exceeds the tick bound
        pool = make_pool("995.00", liquidity=10**15)
        book = make_book().snapshot()

        candidates = evaluator.best_candidates(pool, book, costs)

        assert candidates
        for candidate in candidates:
            assert candidate.trade_size <= Decimal("1")

    def test_ties_prefer_larger_size(self, evaluator, make_pool, make_book, costs):
        pool = make_pool("995.00")
        book = make_book().snapshot()
        opp = evaluator.evaluate(pool, book, costs, now=NOW)[0]
        smaller = opp.__class__(**{**opp.__dict__, "trade_size": opp.trade_size / 2})

        assert ArbitrageEvaluator._is_better(opp, smaller)
        assert not ArbitrageEvaluator._is_better(smaller, opp)
        assert ArbitrageEvaluator._is_better(smaller, None)

    def test_metrics_record_best_net(self, clock, make_pool, make_book, costs):
        metrics = MagicMock()
        evaluator = ArbitrageEvaluator(
            ConstantImpactModel(), FixedSizePolicy("1"), time_provider=clock, metrics=metrics
        )
        evaluator.evaluate(make_pool(), make_book().snapshot(), costs, now=NOW)
        directions = {c.args[0] for c in metrics.record_best_net.call_args_list}
        assert directions == {d.value for d in Direction}
