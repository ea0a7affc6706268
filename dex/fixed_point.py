"""
Q64.96 fixed-point price math for Uniswap V3 pools.

Square-root prices and raw token amounts are plain Python ints, so squaring a
160-bit sqrtPriceX96 never overflows. Conversions to human prices build the
exact integer numerator and denominator first and divide once in a
high-precision Decimal context. Swap-step amounts are exact Decimals in the
same context rather than rounded raw units.
"""

from decimal import ROUND_FLOOR, Decimal, localcontext
from math import isqrt
from typing import Any

from arbitrage_detector.exceptions import InvalidInput
from arbitrage_detector.utils import to_decimal

Q96 = 2**96
Q192 = Q96 * Q96

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

TICK_BASE = Decimal("1.0001")

# Significant digits for the single rounding step of a price conversion
PRICE_PRECISION = 80


def _require_sqrt(sqrt_price_x96: Any) -> int:
    if isinstance(sqrt_price_x96, bool) or not isinstance(sqrt_price_x96, int):
        raise InvalidInput(
            f"sqrt_price_x96 must be an int, got {type(sqrt_price_x96).__name__}",
            field="sqrt_price_x96",
            value=sqrt_price_x96,
        )
    if sqrt_price_x96 <= 0:
        raise InvalidInput(
            "sqrt_price_x96 must be positive",
            field="sqrt_price_x96",
            value=sqrt_price_x96,
        )
    return sqrt_price_x96


def _require_decimals(token0_decimals: int, token1_decimals: int) -> None:
    for name, value in (
        ("token0_decimals", token0_decimals),
        ("token1_decimals", token1_decimals),
    ):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidInput(
                f"{name} must be a non-negative int", field=name, value=value
            )


def price_from_sqrt_x96(
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
    invert: bool = False,
) -> Decimal:
    """
    Convert a Q96 square-root price into a human-denominated price.

    By default returns the price of token1 denominated in token0, i.e.
    ``10**dec1 * 2**192 / (sqrt**2 * 10**dec0)``. For the USDC(token0)/WETH(token1)
    pool this is USDC per WETH. With ``invert=True`` returns token0 in token1.

    Args:
        sqrt_price_x96: Pool's sqrtPriceX96 from slot0
        token0_decimals: Decimals of token0
        token1_decimals: Decimals of token1
        invert: Return token0 priced in token1 instead

    Returns:
        Price as Decimal

    Raises:
        InvalidInput: If sqrt_price_x96 is not a positive int or decimals are negative
    """
    _require_sqrt(sqrt_price_x96)
    _require_decimals(token0_decimals, token1_decimals)

    squared = sqrt_price_x96 * sqrt_price_x96
    if invert:
        numerator = squared * 10**token0_decimals
        denominator = Q192 * 10**token1_decimals
    else:
        numerator = Q192 * 10**token1_decimals
        denominator = squared * 10**token0_decimals

    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        return Decimal(numerator) / Decimal(denominator)


def sqrt_x96_from_price(
    price: Any,
    token0_decimals: int,
    token1_decimals: int,
    invert: bool = False,
) -> int:
    """
    Inverse of price_from_sqrt_x96 (floor of the exact square root).

    Raises:
        InvalidInput: If price is not positive
    """
    _require_decimals(token0_decimals, token1_decimals)
    value = to_decimal(price, "price")
    if value <= 0:
        raise InvalidInput("price must be positive", field="price", value=price)

    num, den = value.as_integer_ratio()
    if invert:
        squared = (num * Q192 * 10**token1_decimals) // (den * 10**token0_decimals)
    else:
        squared = (den * Q192 * 10**token1_decimals) // (num * 10**token0_decimals)

    result = isqrt(squared)
    if result <= 0:
        raise InvalidInput(
            "price is outside the representable sqrt range", field="price", value=price
        )
    return result


def sqrt_ratio_at_tick(tick: int) -> int:
    """Return floor(sqrt(1.0001**tick) * 2**96)."""
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidInput(
            f"tick {tick} outside [{MIN_TICK}, {MAX_TICK}]", field="tick", value=tick
        )
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        scaled = (TICK_BASE**tick).sqrt() * Q96
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """Return the greatest tick whose sqrt ratio is <= sqrt_price_x96."""
    _require_sqrt(sqrt_price_x96)
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        raw_price = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q192)
        estimate = raw_price.ln() / TICK_BASE.ln()
        tick = int(estimate.to_integral_value(rounding=ROUND_FLOOR))

    tick = max(MIN_TICK, min(tick, MAX_TICK))
    # The log estimate can land one tick off at exact boundaries
    while tick > MIN_TICK and sqrt_ratio_at_tick(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and sqrt_ratio_at_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick


def to_raw(amount: Any, decimals: int) -> int:
    """Convert a human amount to raw integer token units (floor)."""
    value = to_decimal(amount, "amount")
    scaled = value.scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def from_raw(raw: Any, decimals: int) -> Decimal:
    """Convert raw token units (int or exact Decimal) to a human Decimal amount."""
    return Decimal(raw).scaleb(-decimals)


# Swap-step math over real-valued amounts. Sqrt prices may be ints or Decimals;
# results are Decimals so output varies smoothly with input.


def next_sqrt_price_from_amount0(sqrt_price_x96: Any, liquidity: int, amount: Any) -> Decimal:
    """Sqrt price after adding ``amount`` raw token0 (price moves down)."""
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        sqrt_price = Decimal(sqrt_price_x96)
        numerator = Decimal(liquidity) * Q96
        return numerator * sqrt_price / (numerator + Decimal(amount) * sqrt_price)


def next_sqrt_price_from_amount1(sqrt_price_x96: Any, liquidity: int, amount: Any) -> Decimal:
    """Sqrt price after adding ``amount`` raw token1 (price moves up)."""
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        return Decimal(sqrt_price_x96) + Decimal(amount) * Q96 / Decimal(liquidity)


def amount0_delta(sqrt_a: Any, sqrt_b: Any, liquidity: int) -> Decimal:
    """Raw token0 between two sqrt prices: ``L * 2**96 * (b - a) / (a * b)``."""
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        low, high = sorted((Decimal(sqrt_a), Decimal(sqrt_b)))
        return Decimal(liquidity) * Q96 * (high - low) / (low * high)


def amount1_delta(sqrt_a: Any, sqrt_b: Any, liquidity: int) -> Decimal:
    """Raw token1 between two sqrt prices: ``L * (b - a) / 2**96``."""
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        low, high = sorted((Decimal(sqrt_a), Decimal(sqrt_b)))
        return Decimal(liquidity) * (high - low) / Q96
