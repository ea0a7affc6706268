"""Version information for the arbitrage detector."""

__version__ = "0.3.0"
