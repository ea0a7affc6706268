"""
Price-impact models for Uniswap V3 swaps.

Two interchangeable models share one ``quote(pool_state, side, amount_in)``
interface:

- ConstantImpactModel: closed-form estimate from spot price, active liquidity
  and a configured coefficient. Always available, needs only slot0/liquidity.
- TickWalkModel: exact-input walk through the pool's constant-product-within-tick
  math in high-precision Decimal over Q96 sqrt prices, crossing initialized ticks.

The LP fee is deducted from the input before either model moves the price.
"""

import logging
from decimal import ROUND_CEILING, Decimal, localcontext
from typing import Any, Optional, Protocol, runtime_checkable

from arbitrage_detector.exceptions import (
    ConfigurationError,
    InsufficientLiquidity,
    InvalidInput,
)
from arbitrage_detector.utils import to_decimal

from .fixed_point import (
    MAX_TICK,
    MIN_TICK,
    PRICE_PRECISION,
    Q96,
    TICK_BASE,
    amount0_delta,
    amount1_delta,
    from_raw,
    next_sqrt_price_from_amount0,
    next_sqrt_price_from_amount1,
    sqrt_ratio_at_tick,
    to_raw,
)
from .types import PoolState, SwapSide, TradeQuote

logger = logging.getLogger(__name__)

BPS = Decimal("10000")
DEFAULT_MAX_TICK_EXCURSION = 2000


@runtime_checkable
class SlippageModel(Protocol):
    """Anything that can price a swap against a pool snapshot."""

    name: str

    def quote(self, pool_state: PoolState, side: SwapSide, amount_in: Any) -> TradeQuote:
        ...


def _net_of_fee(amount_in: Decimal, fee_bps: Decimal) -> Decimal:
    return amount_in * (Decimal(1) - Decimal(fee_bps) / BPS)


def _spot_rate(spot_price: Decimal, side: SwapSide) -> Decimal:
    """Output units per input unit at spot, before fee."""
    if side is SwapSide.BUY_BASE:
        return Decimal(1) / spot_price
    return spot_price


def _impact_bps(effective_price: Decimal, spot_rate: Decimal, fee_bps: Decimal) -> Decimal:
    reference = _net_of_fee(spot_rate, fee_bps)
    if reference <= 0:
        return Decimal(0)
    impact = (Decimal(1) - effective_price / reference) * BPS
    return max(Decimal(0), impact)


def _validate_amount(amount_in: Any) -> Decimal:
    value = to_decimal(amount_in, "amount_in")
    if value <= 0:
        raise InvalidInput("amount_in must be positive", field="amount_in", value=amount_in)
    return value


class ConstantImpactModel:
    """
    Closed-form impact estimate.

    The impact fraction is ``coefficient * net_in / virtual_reserve_in`` where the
    virtual reserve of the input token at the current price is ``L * 2**96 / sqrtP``
    for token0 and ``L * sqrtP / 2**96`` for token1. Output is
    ``net_in * spot_rate * (1 - f)``.
    """

    name = "constant"

    def __init__(
        self,
        coefficient: Any = Decimal("1"),
        max_tick_excursion: int = DEFAULT_MAX_TICK_EXCURSION,
    ):
        self.coefficient = to_decimal(coefficient, "coefficient")
        if self.coefficient < 0:
            raise ConfigurationError("slippage coefficient must be non-negative")
        if max_tick_excursion <= 0:
            raise ConfigurationError("max_tick_excursion must be positive")
        self.max_tick_excursion = int(max_tick_excursion)

    def virtual_reserve_in(self, pool_state: PoolState, side: SwapSide) -> Decimal:
        """Raw virtual reserve of the input token at the current price."""
        liquidity = Decimal(pool_state.liquidity)
        sqrt_price = Decimal(pool_state.sqrt_price_x96)
        with localcontext() as ctx:
            ctx.prec = PRICE_PRECISION
            if pool_state.zero_for_one(side):
                return liquidity * Q96 / sqrt_price
            return liquidity * sqrt_price / Q96

    def tick_excursion(self, impact: Decimal) -> int:
        """Ticks the price moves for an impact fraction, from a (1+f)**2 price move."""
        if impact <= 0:
            return 0
        with localcontext() as ctx:
            ctx.prec = PRICE_PRECISION
            ticks = 2 * (Decimal(1) + impact).ln() / TICK_BASE.ln()
            return int(ticks.to_integral_value(rounding=ROUND_CEILING))

    def quote(self, pool_state: PoolState, side: SwapSide, amount_in: Any) -> TradeQuote:
        amount = _validate_amount(amount_in)
        if pool_state.liquidity == 0:
            raise InsufficientLiquidity(
                "pool has no active liquidity", requested=amount
            )

        fee_bps = Decimal(pool_state.fee_bps)
        net_in = _net_of_fee(amount, fee_bps)
        reserve_in = self.virtual_reserve_in(pool_state, side)
        net_in_raw = net_in.scaleb(pool_state.input_decimals(side))
        impact = self.coefficient * net_in_raw / reserve_in

        excursion = self.tick_excursion(impact)
        if impact >= 1 or excursion > self.max_tick_excursion:
            raise InsufficientLiquidity(
                f"{side.value} of {amount} moves price ~{excursion} ticks "
                f"(max {self.max_tick_excursion})",
                requested=amount,
                tick_excursion=excursion,
                max_tick_excursion=self.max_tick_excursion,
            )

        spot = pool_state.spot_price()
        rate = _spot_rate(spot, side)
        amount_out = net_in * rate * (Decimal(1) - impact)
        effective_price = amount_out / amount

        logger.debug(
            f"[DEX] constant impact {side.value} in={amount} out={amount_out:.8f} "
            f"impact={float(impact) * 100:.4f}% ticks~{excursion}"
        )

        return TradeQuote(
            side=side,
            amount_in=amount,
            amount_out=amount_out,
            effective_price=effective_price,
            fee_bps_applied=fee_bps,
            slippage_bps=_impact_bps(effective_price, rate, fee_bps),
            spot_price=spot,
            ticks_crossed=0,
            model=self.name,
        )


class TickWalkModel:
    """
    Exact-input swap simulation over initialized ticks.

    Uses ``pool_state.ticks`` for liquidity changes; when the snapshot carries no
    tick data, active liquidity is held constant out to the excursion bound.
    """

    name = "tick_walk"

    def __init__(self, max_tick_excursion: int = DEFAULT_MAX_TICK_EXCURSION):
        if max_tick_excursion <= 0:
            raise ConfigurationError("max_tick_excursion must be positive")
        self.max_tick_excursion = int(max_tick_excursion)

    def _limit_sqrt(self, pool_state: PoolState, zero_for_one: bool) -> int:
        if zero_for_one:
            bound = max(MIN_TICK, pool_state.tick - self.max_tick_excursion)
        else:
            bound = min(MAX_TICK, pool_state.tick + self.max_tick_excursion)
        return sqrt_ratio_at_tick(bound)

    @staticmethod
    def _next_initialized(pool_state: PoolState, current_tick: int, zero_for_one: bool):
        if zero_for_one:
            for tick in reversed(pool_state.ticks):
                if tick.index <= current_tick:
                    return tick
            return None
        for tick in pool_state.ticks:
            if tick.index > current_tick:
                return tick
        return None

    def quote(self, pool_state: PoolState, side: SwapSide, amount_in: Any) -> TradeQuote:
        amount = _validate_amount(amount_in)
        fee_bps = Decimal(pool_state.fee_bps)
        zero_for_one = pool_state.zero_for_one(side)
        net_in = _net_of_fee(amount, fee_bps)

        if to_raw(net_in, pool_state.input_decimals(side)) <= 0:
            raise InsufficientLiquidity(
                f"{side.value} of {amount} is below one raw unit after fee",
                requested=amount,
            )

        with localcontext() as ctx:
            ctx.prec = PRICE_PRECISION
            remaining = net_in.scaleb(pool_state.input_decimals(side))
            sqrt_price = Decimal(pool_state.sqrt_price_x96)
            liquidity = pool_state.liquidity
            current_tick = pool_state.tick
            limit = Decimal(self._limit_sqrt(pool_state, zero_for_one))
            amount_out_raw = Decimal(0)
            crossed = 0

            while remaining > 0:
                boundary = self._next_initialized(pool_state, current_tick, zero_for_one)
                target = limit
                if boundary is not None and MIN_TICK <= boundary.index <= MAX_TICK:
                    boundary_sqrt = Decimal(sqrt_ratio_at_tick(boundary.index))
                    if zero_for_one and boundary_sqrt > limit:
                        target = boundary_sqrt
                    elif not zero_for_one and boundary_sqrt < limit:
                        target = boundary_sqrt
                    else:
                        boundary = None
                else:
                    boundary = None

                if liquidity > 0:
                    if zero_for_one:
                        max_in = amount0_delta(target, sqrt_price, liquidity)
                    else:
                        max_in = amount1_delta(sqrt_price, target, liquidity)

                    if remaining >= max_in:
                        next_sqrt = target
                        step_in = max_in
                    elif zero_for_one:
                        next_sqrt = next_sqrt_price_from_amount0(sqrt_price, liquidity, remaining)
                        step_in = remaining
                    else:
                        next_sqrt = next_sqrt_price_from_amount1(sqrt_price, liquidity, remaining)
                        step_in = remaining

                    if zero_for_one:
                        step_out = amount1_delta(next_sqrt, sqrt_price, liquidity)
                    else:
                        step_out = amount0_delta(sqrt_price, next_sqrt, liquidity)

                    remaining -= step_in
                    amount_out_raw += step_out
                    sqrt_price = next_sqrt
                elif boundary is None:
                    break
                else:
                    # Empty range: jump straight to the next initialized tick
                    sqrt_price = target

                if remaining <= 0:
                    break
                if sqrt_price != target:
                    break
                if boundary is None:
                    break

                if zero_for_one:
                    liquidity -= boundary.liquidity_net
                    current_tick = boundary.index - 1
                else:
                    liquidity += boundary.liquidity_net
                    current_tick = boundary.index
                crossed += 1
                if liquidity < 0:
                    raise InvalidInput(
                        f"tick {boundary.index} drives liquidity negative",
                        field="ticks",
                        value=boundary.index,
                    )

        if remaining > 0:
            raise InsufficientLiquidity(
                f"{side.value} of {amount} exceeds pool depth within "
                f"{self.max_tick_excursion} ticks",
                requested=amount,
                max_tick_excursion=self.max_tick_excursion,
                details={"unfilled_raw": remaining, "ticks_crossed": crossed},
            )

        spot = pool_state.spot_price()
        rate = _spot_rate(spot, side)
        # Unrounded output keeps effective price non-increasing in size, even at dust
        amount_out = from_raw(amount_out_raw, pool_state.output_decimals(side))
        effective_price = amount_out / amount

        logger.debug(
            f"[DEX] tick walk {side.value} in={amount} out={amount_out} crossed={crossed}"
        )

        return TradeQuote(
            side=side,
            amount_in=amount,
            amount_out=amount_out,
            effective_price=effective_price,
            fee_bps_applied=fee_bps,
            slippage_bps=_impact_bps(effective_price, rate, fee_bps),
            spot_price=spot,
            ticks_crossed=crossed,
            model=self.name,
        )


SLIPPAGE_MODELS = {
    ConstantImpactModel.name: ConstantImpactModel,
    TickWalkModel.name: TickWalkModel,
}


def build_slippage_model(name: str, **params: Optional[Any]) -> SlippageModel:
    """
    Build a slippage model by name ("constant" or "tick_walk").

    Raises:
        ConfigurationError: If the name is unknown
    """
    model_cls = SLIPPAGE_MODELS.get(name)
    if model_cls is None:
        raise ConfigurationError(
            f"Unknown slippage model '{name}'",
            details={"available": sorted(SLIPPAGE_MODELS)},
        )
    kwargs = {key: value for key, value in params.items() if value is not None}
    if model_cls is TickWalkModel:
        kwargs.pop("coefficient", None)
    return model_cls(**kwargs)
