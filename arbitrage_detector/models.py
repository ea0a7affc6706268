"""
Opportunity records and the cost inputs the evaluator consumes.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from dex.types import TradeQuote

from .exceptions import InvalidInput
from .utils import to_decimal


class Direction(str, Enum):
    BUY_DEX_SELL_CEX = "buy_dex_sell_cex"
    BUY_CEX_SELL_DEX = "buy_cex_sell_dex"

    @property
    def label(self) -> str:
        return "A" if self is Direction.BUY_DEX_SELL_CEX else "B"


@dataclass(frozen=True)
class CostInputs:
    """
    Per-tick cost settings.

    Attributes:
        cex_fee_bps: Exchange taker fee in bps
        gas_units: Gas used by one swap
        gas_price_gwei: Current gas price in gwei (None until the first read)
        gas_multiplier: Safety multiplier on gas
        min_pnl: Emit threshold in quote currency (strictly greater than)
        native_price_override: Quote price of the gas asset; defaults to book mid
    """

    cex_fee_bps: Decimal
    gas_units: int
    gas_price_gwei: Optional[Decimal]
    gas_multiplier: Decimal = Decimal("1")
    min_pnl: Decimal = Decimal("0")
    native_price_override: Optional[Decimal] = None

    def __post_init__(self):
        for name in ("cex_fee_bps", "gas_multiplier", "min_pnl"):
            value = to_decimal(getattr(self, name), name)
            object.__setattr__(self, name, value)
        for name in ("gas_price_gwei", "native_price_override"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value, name))
        if self.gas_units < 0:
            raise InvalidInput(
                "gas_units must be non-negative", field="gas_units", value=self.gas_units
            )
        for name in ("cex_fee_bps", "gas_multiplier"):
            if getattr(self, name) < 0:
                raise InvalidInput(f"{name} must be non-negative", field=name)

    def with_gas_price(self, gas_price_gwei: Decimal) -> "CostInputs":
        return replace(self, gas_price_gwei=gas_price_gwei)


@dataclass(frozen=True)
class Opportunity:
    """
    A profitable discrepancy for one direction at one trade size.

    Attributes:
        direction: Which venue buys and which sells
        trade_size: Base quantity traded on the CEX leg
        gross_pnl: Quote profit before exchange fee and gas (LP fee included)
        net_pnl: gross_pnl - cex_fee - gas_cost
        cex_fee: Exchange fee in quote currency
        gas_cost: Swap gas in quote currency
        dex_quote: Pool quote backing the DEX leg
        cex_price_used: Book price the CEX leg executes at
        timestamp: Wall-clock Unix time of the evaluation
    """

    direction: Direction
    trade_size: Decimal
    gross_pnl: Decimal
    net_pnl: Decimal
    cex_fee: Decimal
    gas_cost: Decimal
    dex_quote: TradeQuote
    cex_price_used: Decimal
    timestamp: float

    def describe(self, base_symbol: str = "ETH") -> str:
        if self.direction is Direction.BUY_DEX_SELL_CEX:
            return (
                f"A: Buy {self.trade_size:.6f} {base_symbol} on DEX "
                f"@ ${self.dex_quote.quote_price:.2f} → Sell on CEX "
                f"@ ${self.cex_price_used:.2f} | Earn ${self.net_pnl:.2f}"
            )
        return (
            f"B: Buy {self.trade_size:.6f} {base_symbol} on CEX "
            f"@ ${self.cex_price_used:.2f} → Sell on DEX "
            f"@ ${self.dex_quote.quote_price:.2f} | Earn ${self.net_pnl:.2f}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "direction": self.direction.value,
            "trade_size": float(self.trade_size),
            "gross_pnl": float(self.gross_pnl),
            "net_pnl": float(self.net_pnl),
            "cex_fee": float(self.cex_fee),
            "gas_cost": float(self.gas_cost),
            "cex_price_used": float(self.cex_price_used),
            "dex_price": float(self.dex_quote.quote_price),
            "dex_slippage_bps": float(self.dex_quote.slippage_bps),
            "dex_fee_bps": float(self.dex_quote.fee_bps_applied),
            "dex_model": self.dex_quote.model,
            "timestamp": self.timestamp,
        }
