"""Tests for trade-size policies."""

from decimal import Decimal

import pytest

from arbitrage_detector.exceptions import ConfigurationError
from arbitrage_detector.sizing import (
    FixedSizePolicy,
    LadderSizePolicy,
    SizePolicy,
    SizingTarget,
    TargetPriceSizePolicy,
)
from dex.types import SwapSide

# ~3160 ETH of virtual depth around $1000
LIQUIDITY = 10**17


def test_fixed_policy():
    policy = FixedSizePolicy("1.5")
    assert isinstance(policy, SizePolicy)
    assert policy.candidates() == (Decimal("1.5"),)


@pytest.mark.parametrize("size", [0, "-1"])
def test_fixed_policy_rejects_non_positive(size):
    with pytest.raises(ConfigurationError):
        FixedSizePolicy(size)


def test_ladder_is_geometric_and_inclusive():
    sizes = LadderSizePolicy("0.1", "1.0", steps=4).candidates()
    assert len(sizes) == 4
    assert sizes[0] == Decimal("0.1")
    assert sizes[-1] == Decimal("1.0")
    assert list(sizes) == sorted(sizes)
    # 10 ** (1/3) between neighbours
    assert abs(sizes[1] / sizes[0] - Decimal("2.15443469")) < Decimal("1e-6")


def test_ladder_is_deterministic():
    a = LadderSizePolicy("0.05", "5", steps=8).candidates()
    b = LadderSizePolicy("0.05", "5", steps=8).candidates()
    assert a == b


def test_ladder_degenerate_ranges():
    assert LadderSizePolicy("1", "1", steps=5).candidates() == (Decimal("1"),)
    assert LadderSizePolicy("0.5", "2", steps=1).candidates() == (Decimal("2"),)


@pytest.mark.parametrize(
    "min_size,max_size,steps",
    [(0, 1, 3), ("2", "1", 3), ("0.1", "1", 0)],
)
def test_ladder_rejects_bad_config(min_size, max_size, steps):
    with pytest.raises(ConfigurationError):
        LadderSizePolicy(min_size, max_size, steps)


def bid_target(pool, bid="1000", cex_fee_bps="1"):
    return SizingTarget(pool, SwapSide.BUY_BASE, Decimal(bid), Decimal(cex_fee_bps))


def ask_target(pool, ask="1001", cex_fee_bps="1"):
    return SizingTarget(pool, SwapSide.SELL_BASE, Decimal(ask), Decimal(cex_fee_bps))


class TestTargetPriceSizePolicy:
    def test_implements_protocol(self):
        assert isinstance(TargetPriceSizePolicy(), SizePolicy)

    def test_break_even_prices(self, make_pool):
        pool = make_pool()
        policy = TargetPriceSizePolicy()
        # bid less 1 bp exchange fee, less 5 bp LP fee
        assert policy.break_even_price(bid_target(pool)) == Decimal("999.40005")
        ask_side = policy.break_even_price(ask_target(pool))
        assert abs(ask_side - Decimal("1001.1001") / Decimal("0.9995")) < Decimal("1e-20")

    def test_buying_base_walks_pool_up_to_bid(self, make_pool):
        pool = make_pool("995.00", liquidity=LIQUIDITY)
        (size,) = TargetPriceSizePolicy().candidates(bid_target(pool))
        # L * (1/sqrt(995) - 1/sqrt(999.40005)) * 1e6 / 1e18 ETH
        assert Decimal("6.9") < size < Decimal("7.05")
        assert size == size.quantize(Decimal("1e-8"))

    def test_selling_base_walks_pool_down_to_ask(self, make_pool):
        pool = make_pool("1010.00", liquidity=LIQUIDITY)
        (size,) = TargetPriceSizePolicy().candidates(ask_target(pool))
        assert Decimal("13.0") < size < Decimal("13.3")

    def test_size_scales_with_liquidity(self, make_pool):
        policy = TargetPriceSizePolicy()
        shallow = policy.candidates(bid_target(make_pool("995.00", liquidity=LIQUIDITY)))
        deep = policy.candidates(bid_target(make_pool("995.00", liquidity=LIQUIDITY * 10)))
        assert abs(deep[0] / shallow[0] - 10) < Decimal("1e-6")

    def test_no_edge_no_candidates(self, make_pool):
        pool = make_pool("1000.50", liquidity=LIQUIDITY)
        policy = TargetPriceSizePolicy()
        assert policy.candidates(bid_target(pool)) == ()
        assert policy.candidates(ask_target(pool)) == ()

    def test_fees_can_close_the_edge(self, make_pool):
        pool = make_pool("999.00", liquidity=LIQUIDITY)
        policy = TargetPriceSizePolicy()
        assert policy.candidates(bid_target(pool, cex_fee_bps="0"))
        assert policy.candidates(bid_target(pool, cex_fee_bps="10")) == ()

    def test_needs_pool_context(self, make_pool):
        policy = TargetPriceSizePolicy()
        assert policy.candidates() == ()
        assert policy.candidates(bid_target(make_pool("995.00", liquidity=0))) == ()

    def test_max_size_bounds_candidate(self, make_pool):
        pool = make_pool("995.00", liquidity=LIQUIDITY)
        assert TargetPriceSizePolicy(max_size="2").candidates(bid_target(pool)) == (Decimal("2"),)

    @pytest.mark.parametrize("max_size", [0, "-1"])
    def test_rejects_non_positive_max_size(self, max_size):
        with pytest.raises(ConfigurationError):
            TargetPriceSizePolicy(max_size=max_size)


def test_fixed_and_ladder_ignore_target(make_pool):
    target = bid_target(make_pool("995.00"))
    assert FixedSizePolicy("1").candidates(target) == (Decimal("1"),)
    assert LadderSizePolicy("1", "1").candidates(target) == (Decimal("1"),)
