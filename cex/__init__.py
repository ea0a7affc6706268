"""
CEX (Centralized Exchange) side of the detector.

Module Structure:
-----------------
- constants.py: Endpoints, stream names and fee schedules
- orderbook.py: Top-of-book snapshot and its shared single-writer slot
- binance.py: Binance message decoding and WebSocket book source
"""

from cex.orderbook import BookLevel, BookSide, OrderBookState, OrderBookTop

__all__ = ["BookLevel", "BookSide", "OrderBookState", "OrderBookTop"]
