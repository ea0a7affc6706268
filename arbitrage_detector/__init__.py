"""
CEX/DEX Arbitrage Detector.

Compares a Uniswap V3 pool price with a centralized exchange top-of-book for the
same pair and reports discrepancies that stay profitable after exchange fees,
pool fees, price impact and gas.
"""

from arbitrage_detector.version import __version__

PROJECT_NAME = "arbitrage-detector"
VERSION = __version__

__all__ = ["PROJECT_NAME", "VERSION", "__version__"]
