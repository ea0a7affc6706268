"""
Core data types for the Uniswap V3 pool model.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from arbitrage_detector.exceptions import InvalidInput

from .fixed_point import price_from_sqrt_x96


class SwapSide(str, Enum):
    """Which way the pool is traded, from the base asset's point of view."""

    BUY_BASE = "buy_base"  # quote in, base out
    SELL_BASE = "sell_base"  # base in, quote out


@dataclass(frozen=True)
class TickLiquidity:
    """
    An initialized tick and the liquidity change applied when crossing it upward.

    Attributes:
        index: Tick index
        liquidity_net: Signed liquidity delta (added moving up, subtracted moving down)
    """

    index: int
    liquidity_net: int


@dataclass(frozen=True)
class PoolState:
    """
    Immutable snapshot of a Uniswap V3 pool read from chain.

    Attributes:
        sqrt_price_x96: Square root of token1/token0 raw price, Q64.96
        liquidity: Active in-range liquidity (uint128)
        tick: Current tick index
        fee_bps: LP fee in basis points (5 for the 0.05% tier)
        token0_decimals: Decimals of token0
        token1_decimals: Decimals of token1
        base_is_token0: True when the base asset (e.g. WETH) is token0
        tick_spacing: Pool tick spacing
        ticks: Initialized ticks near the current price, sorted by index
        observed_at: Monotonic timestamp of the chain read
    """

    sqrt_price_x96: int
    liquidity: int
    tick: int
    fee_bps: Decimal
    token0_decimals: int
    token1_decimals: int
    base_is_token0: bool = False
    tick_spacing: int = 10
    ticks: Tuple[TickLiquidity, ...] = ()
    observed_at: float = 0.0

    def __post_init__(self):
        if self.sqrt_price_x96 <= 0:
            raise InvalidInput(
                "sqrt_price_x96 must be positive",
                field="sqrt_price_x96",
                value=self.sqrt_price_x96,
            )
        if self.liquidity < 0:
            raise InvalidInput(
                "liquidity must be non-negative", field="liquidity", value=self.liquidity
            )
        if not Decimal(0) <= Decimal(self.fee_bps) < Decimal(10000):
            raise InvalidInput(
                "fee_bps must be in [0, 10000)", field="fee_bps", value=self.fee_bps
            )
        ordered = tuple(sorted(self.ticks, key=lambda t: t.index))
        if ordered != tuple(self.ticks):
            object.__setattr__(self, "ticks", ordered)

    def spot_price(self) -> Decimal:
        """Quote per base at the current sqrt price."""
        # Default orientation is token1 priced in token0
        return price_from_sqrt_x96(
            self.sqrt_price_x96,
            self.token0_decimals,
            self.token1_decimals,
            invert=self.base_is_token0,
        )

    def zero_for_one(self, side: SwapSide) -> bool:
        """True when trading ``side`` means paying token0 into the pool."""
        return (side is SwapSide.BUY_BASE) != self.base_is_token0

    def input_decimals(self, side: SwapSide) -> int:
        return self.token0_decimals if self.zero_for_one(side) else self.token1_decimals

    def output_decimals(self, side: SwapSide) -> int:
        return self.token1_decimals if self.zero_for_one(side) else self.token0_decimals

    def age(self, now: float) -> float:
        return max(0.0, now - self.observed_at)


@dataclass(frozen=True)
class TradeQuote:
    """
    Result of quoting a swap against a pool snapshot.

    Attributes:
        side: Swap direction
        amount_in: Input amount in human units (quote for BUY_BASE, base for SELL_BASE)
        amount_out: Output amount in human units, LP fee already deducted
        effective_price: amount_out / amount_in
        fee_bps_applied: LP fee deducted from the input
        slippage_bps: Price impact vs. the fee-adjusted spot rate, in bps
        spot_price: Pool spot price (quote per base) at quote time
        ticks_crossed: Initialized ticks crossed by the swap
        model: Name of the slippage model that produced the quote
    """

    side: SwapSide
    amount_in: Decimal
    amount_out: Decimal
    effective_price: Decimal
    fee_bps_applied: Decimal
    slippage_bps: Decimal
    spot_price: Decimal
    ticks_crossed: int = 0
    model: Optional[str] = None

    @property
    def base_amount(self) -> Decimal:
        return self.amount_out if self.side is SwapSide.BUY_BASE else self.amount_in

    @property
    def quote_amount(self) -> Decimal:
        return self.amount_in if self.side is SwapSide.BUY_BASE else self.amount_out

    @property
    def quote_price(self) -> Decimal:
        """Realized quote per base of the swap, fee included."""
        if self.base_amount == 0:
            return Decimal(0)
        return self.quote_amount / self.base_amount
