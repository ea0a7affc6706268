"""
Trade-size policies.

A policy proposes candidate base-asset sizes; the evaluator caps them by book
depth, quotes every candidate and keeps the best net PnL. Fixed and ladder
candidates are a deterministic set so identical inputs always explore identical
sizes. The target-price policy derives its candidate from the pool snapshot and
the CEX price of the direction being evaluated.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

from dex.fixed_point import amount0_delta, amount1_delta, from_raw, sqrt_x96_from_price
from dex.types import PoolState, SwapSide

from .costs import bps_to_fraction
from .exceptions import ConfigurationError
from .utils import to_decimal

SIZE_QUANTUM = Decimal("1e-8")


@dataclass(frozen=True)
class SizingTarget:
    """
    What one direction trades against.

    Attributes:
        pool_state: Pool snapshot being evaluated
        side: Pool leg of the direction (BUY_BASE when selling at the bid)
        cex_price: Bid or ask the CEX leg fills at
        cex_fee_bps: Exchange taker fee in bps
    """

    pool_state: PoolState
    side: SwapSide
    cex_price: Decimal
    cex_fee_bps: Decimal


@runtime_checkable
class SizePolicy(Protocol):
    def candidates(self, target: Optional[SizingTarget] = None) -> Tuple[Decimal, ...]:
        ...


class FixedSizePolicy:
    """Single configured trial size."""

    def __init__(self, size: Any):
        self.size = to_decimal(size, "trade_size")
        if self.size <= 0:
            raise ConfigurationError(f"trade_size must be positive: {size}")

    def candidates(self, target: Optional[SizingTarget] = None) -> Tuple[Decimal, ...]:
        return (self.size,)

    def __repr__(self) -> str:
        return f"FixedSizePolicy({self.size})"


class LadderSizePolicy:
    """Geometric ladder of ``steps`` sizes from ``min_size`` to ``max_size`` inclusive."""

    def __init__(self, min_size: Any, max_size: Any, steps: int = 8):
        self.min_size = to_decimal(min_size, "min_size")
        self.max_size = to_decimal(max_size, "max_size")
        if self.min_size <= 0:
            raise ConfigurationError(f"min_size must be positive: {min_size}")
        if self.max_size < self.min_size:
            raise ConfigurationError(
                f"max_size {max_size} must be >= min_size {min_size}"
            )
        if steps < 1:
            raise ConfigurationError(f"steps must be >= 1: {steps}")
        self.steps = steps
        self._candidates = self._build()

    def _build(self) -> Tuple[Decimal, ...]:
        if self.steps == 1 or self.min_size == self.max_size:
            return (self.max_size,)
        ratio = (self.max_size / self.min_size) ** (Decimal(1) / (self.steps - 1))
        sizes: List[Decimal] = []
        size = self.min_size
        for _ in range(self.steps - 1):
            sizes.append(size.quantize(SIZE_QUANTUM))
            size = size * ratio
        sizes.append(self.max_size)
        return tuple(sorted(set(sizes)))

    def candidates(self, target: Optional[SizingTarget] = None) -> Tuple[Decimal, ...]:
        return self._candidates

    def __repr__(self) -> str:
        return f"LadderSizePolicy({self.min_size}..{self.max_size}, steps={self.steps})"


class TargetPriceSizePolicy:
    """
    Size that walks the pool to the fee-adjusted CEX price.

    Buying base on the pool to sell at the bid stays profitable at the margin
    while the pool's marginal buy price ``P / (1 - lp_fee)`` is below
    ``bid * (1 - cex_fee)``. Selling base into the pool after buying at the ask
    stays profitable while ``P * (1 - lp_fee)`` is above ``ask * (1 + cex_fee)``.
    The candidate is the base amount that moves the sqrt price to that marginal
    break-even on the active liquidity (no tick crossing), floored to 1e-8 and
    bounded by ``max_size``. Depth capping is left to the evaluator.
    """

    def __init__(self, max_size: Any = None):
        self.max_size = None if max_size is None else to_decimal(max_size, "max_size")
        if self.max_size is not None and self.max_size <= 0:
            raise ConfigurationError(f"max_size must be positive: {max_size}")

    @staticmethod
    def break_even_price(target: SizingTarget) -> Decimal:
        """Pool spot price at which the next unit of base earns nothing."""
        lp_fee = bps_to_fraction(target.pool_state.fee_bps)
        cex_fee = bps_to_fraction(target.cex_fee_bps)
        if target.side is SwapSide.BUY_BASE:
            return target.cex_price * (1 - cex_fee) * (1 - lp_fee)
        return target.cex_price * (1 + cex_fee) / (1 - lp_fee)

    def candidates(self, target: Optional[SizingTarget] = None) -> Tuple[Decimal, ...]:
        if target is None:
            return ()
        pool = target.pool_state
        if pool.liquidity == 0:
            return ()

        price = self.break_even_price(target)
        spot = pool.spot_price()
        # Buying base pushes the pool price up, selling pushes it down
        if target.side is SwapSide.BUY_BASE and price <= spot:
            return ()
        if target.side is SwapSide.SELL_BASE and price >= spot:
            return ()

        target_sqrt = sqrt_x96_from_price(
            price, pool.token0_decimals, pool.token1_decimals, invert=pool.base_is_token0
        )
        if pool.base_is_token0:
            raw = amount0_delta(pool.sqrt_price_x96, target_sqrt, pool.liquidity)
            size = from_raw(raw, pool.token0_decimals)
        else:
            raw = amount1_delta(pool.sqrt_price_x96, target_sqrt, pool.liquidity)
            size = from_raw(raw, pool.token1_decimals)

        if target.side is SwapSide.SELL_BASE:
            # The LP fee is taken from the base paid in
            size = size / (1 - bps_to_fraction(pool.fee_bps))

        if self.max_size is not None:
            size = min(size, self.max_size)
        size = size.quantize(SIZE_QUANTUM, rounding=ROUND_FLOOR)
        if size <= 0:
            return ()
        return (size,)

    def __repr__(self) -> str:
        return f"TargetPriceSizePolicy(max_size={self.max_size})"
