"""
Binance WebSocket book source.

Decodes partial-depth, bookTicker and combined-stream payloads into a
top-of-book update. Transport is aiohttp's WebSocket client.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

import aiohttp

from arbitrage_detector.exceptions import FeedError
from arbitrage_detector.utils import safe_json_load

from .constants import BINANCE_WS_ENDPOINT, stream_name
from .orderbook import BookLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookTopUpdate:
    """Decoded best bid/ask from one feed message."""

    bid_price: Decimal
    bid_qty: Decimal
    ask_price: Decimal
    ask_qty: Decimal
    update_id: Optional[int] = None

    def levels(self) -> Tuple[BookLevel, BookLevel]:
        return BookLevel(self.bid_price, self.bid_qty), BookLevel(self.ask_price, self.ask_qty)


def _parse_level(raw: Any) -> Optional[Tuple[Decimal, Decimal]]:
    try:
        price, qty = Decimal(str(raw[0])), Decimal(str(raw[1]))
    except (InvalidOperation, TypeError, IndexError, KeyError):
        return None
    if not price.is_finite() or not qty.is_finite() or price <= 0 or qty < 0:
        return None
    return price, qty


def _first_valid(levels: Iterable[Any]) -> Optional[Tuple[Decimal, Decimal]]:
    for raw in levels or ():
        level = _parse_level(raw)
        if level is not None:
            return level
    return None


def is_subscription_ack(payload: Any) -> bool:
    return isinstance(payload, dict) and "result" in payload and "id" in payload


def parse_book_message(message: Any) -> Optional[BookTopUpdate]:
    """
    Decode a Binance message into a BookTopUpdate.

    Accepts raw text/bytes or an already decoded dict. Returns None for
    subscription acks, unknown payloads and messages missing a usable side;
    malformed levels are skipped.
    """
    payload = message
    if isinstance(message, (str, bytes, bytearray)):
        payload = safe_json_load(message)
        if payload is None:
            return None

    if not isinstance(payload, dict) or is_subscription_ack(payload):
        return None

    # Combined stream wrapper {"stream": ..., "data": {...}}
    if "stream" in payload and isinstance(payload.get("data"), dict):
        payload = payload["data"]

    if "bids" in payload and "asks" in payload:
        bid = _first_valid(payload["bids"])
        ask = _first_valid(payload["asks"])
        update_id = payload.get("lastUpdateId")
    elif all(key in payload for key in ("b", "B", "a", "A")):
        bid = _parse_level((payload["b"], payload["B"]))
        ask = _parse_level((payload["a"], payload["A"]))
        update_id = payload.get("u")
    else:
        return None

    if bid is None or ask is None:
        return None

    return BookTopUpdate(
        bid_price=bid[0],
        bid_qty=bid[1],
        ask_price=ask[0],
        ask_qty=ask[1],
        update_id=update_id if isinstance(update_id, int) else None,
    )


class BinanceBookSource:
    """
    Book source over a single Binance WebSocket connection.

    Implements connect / subscribe / next_update / close; timeouts and
    reconnection are owned by the feed that drives it.
    """

    def __init__(
        self,
        symbol: str,
        ws_url: str = BINANCE_WS_ENDPOINT,
        stream: Optional[str] = None,
        heartbeat: float = 20.0,
    ):
        self.symbol = symbol
        self.ws_url = ws_url.rstrip("/")
        self.stream = stream or stream_name(symbol)
        self.heartbeat = heartbeat
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._request_id = 0

    @property
    def endpoint(self) -> str:
        return self.ws_url

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.ws_url, heartbeat=self.heartbeat)
        except aiohttp.ClientError as e:
            raise FeedError(
                f"WebSocket connect failed: {e}", feed="cex", endpoint=self.ws_url
            ) from e

    async def subscribe(self) -> None:
        if self._ws is None:
            raise FeedError("subscribe before connect", feed="cex", endpoint=self.ws_url)
        self._request_id += 1
        await self._ws.send_json(
            {"method": "SUBSCRIBE", "params": [self.stream], "id": self._request_id}
        )
        logger.info(f"[CEX] subscribed to {self.stream}")

    async def next_update(self) -> BookTopUpdate:
        """Read until the next decodable book update."""
        if self._ws is None:
            raise FeedError("read before connect", feed="cex", endpoint=self.ws_url)
        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                update = parse_book_message(msg.data)
                if update is not None:
                    return update
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                raise FeedError("WebSocket closed", feed="cex", endpoint=self.ws_url)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise FeedError(
                    f"WebSocket error: {self._ws.exception()}",
                    feed="cex",
                    endpoint=self.ws_url,
                )

    async def close(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
