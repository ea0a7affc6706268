"""
Single source of truth for fee and gas cost calculations.

All costs are Decimal in quote currency and never negative.

Conversion policy:
- Internal: Decimal with 50 digits precision
- No inline /10000 - use bps_to_fraction
- The pool's LP fee is charged inside the slippage model's quote; nothing here
  charges it again
"""

import logging
from decimal import Decimal, getcontext
from typing import Any

from .exceptions import InvalidInput
from .utils import to_decimal

# Set high precision for all decimal operations
getcontext().prec = 50

logger = logging.getLogger(__name__)

# The DEX fee is deducted from amount_in by SlippageModel.quote
DEX_FEE_IS_FOLDED_INTO_QUOTE = True

BPS_PER_UNIT = Decimal("10000")
GWEI = Decimal("1e-9")


# ============================================================================
# Conversion helpers (ONLY place to convert bps)
# ============================================================================


def bps_to_fraction(bps: Any) -> Decimal:
    """Convert basis points to a fraction. 5 bps -> 0.0005"""
    return to_decimal(bps, "bps") / BPS_PER_UNIT


# ============================================================================
# Cost functions
# ============================================================================


def cex_fee(amount: Any, fee_bps: Any) -> Decimal:
    """
    Exchange taker fee on a notional amount.

    Args:
        amount: Notional in quote currency (>= 0)
        fee_bps: Fee in basis points, within [0, 10000]

    Returns:
        amount * fee_bps / 10000

    Raises:
        InvalidInput: If amount is negative or fee_bps is out of range
    """
    amount_d = to_decimal(amount, "amount")
    fee_d = to_decimal(fee_bps, "fee_bps")
    if amount_d < 0:
        raise InvalidInput("amount must be non-negative", field="amount", value=amount)
    if fee_d < 0 or fee_d > BPS_PER_UNIT:
        raise InvalidInput(
            f"fee_bps must be within [0, 10000]: {fee_bps}", field="fee_bps", value=fee_bps
        )
    return amount_d * bps_to_fraction(fee_d)


def gas_cost_quote(
    gas_units: Any, gas_price_gwei: Any, multiplier: Any, mid_price: Any
) -> Decimal:
    """
    Gas cost of one swap converted to quote currency.

    gas_units * gas_price_gwei * 1e-9 * multiplier * mid_price, where mid_price
    is the quote price of the chain's native asset.

    Example:
        200000 gas at 10 gwei with ETH at 1000 USDC costs 2 USDC.
    """
    units = to_decimal(gas_units, "gas_units")
    price = to_decimal(gas_price_gwei, "gas_price_gwei")
    mult = to_decimal(multiplier, "gas_multiplier")
    mid = to_decimal(mid_price, "mid_price")
    for name, value in (
        ("gas_units", units),
        ("gas_price_gwei", price),
        ("gas_multiplier", mult),
        ("mid_price", mid),
    ):
        if value < 0:
            raise InvalidInput(f"{name} must be non-negative", field=name, value=value)

    native_cost = units * price * GWEI * mult
    return native_cost * mid


def net_after_costs(gross: Decimal, fee: Decimal, gas: Decimal) -> Decimal:
    """Net PnL: gross minus exchange fee and gas (LP fee already in gross)."""
    return gross - fee - gas
