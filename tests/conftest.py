"""
Shared fixtures: a deterministic clock and builders for the reference
USDC(token0)/WETH(token1) pool and an ETH/USDC top-of-book.
"""

from decimal import Decimal

import pytest

from arbitrage_detector.interfaces import DeterministicTimeProvider
from cex.orderbook import BookLevel, OrderBookState
from dex.fixed_point import sqrt_x96_from_price, tick_at_sqrt_ratio
from dex.types import PoolState

USDC_DECIMALS = 6
WETH_DECIMALS = 18

# Deep enough that a few ETH move the price by well under a basis point
AMPLE_LIQUIDITY = 10**24


@pytest.fixture
def clock():
    return DeterministicTimeProvider()


@pytest.fixture
def make_pool(clock):
    def _make_pool(
        price="1000.50",
        liquidity=AMPLE_LIQUIDITY,
        fee_bps="5",
        observed_at=None,
        ticks=(),
    ):
        sqrt_price = sqrt_x96_from_price(Decimal(price), USDC_DECIMALS, WETH_DECIMALS)
        return PoolState(
            sqrt_price_x96=sqrt_price,
            liquidity=liquidity,
            tick=tick_at_sqrt_ratio(sqrt_price),
            fee_bps=Decimal(fee_bps),
            token0_decimals=USDC_DECIMALS,
            token1_decimals=WETH_DECIMALS,
            base_is_token0=False,
            ticks=tuple(ticks),
            observed_at=clock.monotonic() if observed_at is None else observed_at,
        )

    return _make_pool


@pytest.fixture
def make_book(clock):
    def _make_book(bid="1000.00", ask="1001.00", bid_qty="10", ask_qty="10"):
        book = OrderBookState(time_provider=clock)
        book.apply_update(BookLevel.of(bid, bid_qty), BookLevel.of(ask, ask_qty))
        return book

    return _make_book
