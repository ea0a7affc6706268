"""
Opportunity sinks: where evaluated opportunities are delivered.
"""

import logging
from typing import List, Protocol, Sequence, runtime_checkable

from .models import Opportunity

logger = logging.getLogger(__name__)


@runtime_checkable
class OpportunitySink(Protocol):
    def __call__(self, opportunities: Sequence[Opportunity]) -> None:
        ...


class LoggingSink:
    """Logs each opportunity as a one-line description at INFO."""

    def __init__(self, base_symbol: str = "ETH", log: logging.Logger = logger):
        self.base_symbol = base_symbol
        self.log = log

    def __call__(self, opportunities: Sequence[Opportunity]) -> None:
        if not opportunities:
            return
        descriptions = [opp.describe(self.base_symbol) for opp in opportunities]
        self.log.info(f"[OPP] opportunities found: {descriptions}")


class CollectingSink:
    """Keeps every delivered opportunity in memory."""

    def __init__(self):
        self.opportunities: List[Opportunity] = []
        self.batches = 0

    def __call__(self, opportunities: Sequence[Opportunity]) -> None:
        self.batches += 1
        self.opportunities.extend(opportunities)
