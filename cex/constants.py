"""
CEX constants: endpoints, stream names and default fee schedules.
"""

from decimal import Decimal
from typing import Dict

BINANCE_WS_ENDPOINT = "wss://stream.binance.com:9443/ws"

# Partial book depth, top 5 levels every 100ms
DEPTH_STREAM_TEMPLATE = "{symbol}@depth5@100ms"
BOOK_TICKER_STREAM_TEMPLATE = "{symbol}@bookTicker"

# Default taker fees of the supported exchanges, in basis points
TAKER_FEES_BPS: Dict[str, Decimal] = {
    "binance": Decimal("10"),  # 0.10%
    "binanceus": Decimal("10"),
}


def taker_fee_bps(exchange: str) -> Decimal:
    """Default taker fee for an exchange; unknown exchanges fall back to binance."""
    return TAKER_FEES_BPS.get(exchange.lower(), TAKER_FEES_BPS["binance"])


def stream_name(symbol: str, kind: str = "depth") -> str:
    """Binance stream name for a pair symbol such as 'ETHUSDC' or 'ETH/USDC'."""
    normalized = symbol.replace("/", "").replace("-", "").lower()
    template = BOOK_TICKER_STREAM_TEMPLATE if kind == "bookTicker" else DEPTH_STREAM_TEMPLATE
    return template.format(symbol=normalized)
