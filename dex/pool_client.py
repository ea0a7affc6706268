"""
Chain readers for the Uniswap V3 pool state and the network gas price.

web3 calls are synchronous; the async wrappers run them in the default thread
pool so the event loop never blocks on RPC.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from web3 import Web3

from arbitrage_detector.exceptions import ConfigurationError, FeedError
from arbitrage_detector.interfaces import TimeProvider, get_time_provider

from .abi import FEE_PIPS_PER_BPS, UNISWAP_V3_POOL_ABI
from .types import PoolState, TickLiquidity

logger = logging.getLogger(__name__)

WEI_PER_GWEI = Decimal(10**9)


def fee_pips_to_bps(fee_pips: int) -> Decimal:
    """Convert a pool fee() reading (500, 3000, 10000) to basis points."""
    return Decimal(fee_pips) / FEE_PIPS_PER_BPS


class UniswapV3PoolReader:
    """
    Reads PoolState snapshots from a single Uniswap V3 pool.

    fee() and tickSpacing() are immutable on-chain and cached after the first read.
    """

    def __init__(
        self,
        web3: Web3,
        pool_address: str,
        token0_decimals: int,
        token1_decimals: int,
        base_is_token0: bool = False,
        fee_bps: Optional[Decimal] = None,
        tick_window_words: int = 0,
        time_provider: Optional[TimeProvider] = None,
    ):
        if not Web3.is_address(pool_address):
            raise ConfigurationError(f"Invalid pool address: {pool_address}")
        self.web3 = web3
        self.pool_address = Web3.to_checksum_address(pool_address)
        self.token0_decimals = token0_decimals
        self.token1_decimals = token1_decimals
        self.base_is_token0 = base_is_token0
        self.tick_window_words = tick_window_words
        self.time_provider = time_provider or get_time_provider()
        self._fee_bps = fee_bps
        self._tick_spacing: Optional[int] = None
        self.pool = web3.eth.contract(address=self.pool_address, abi=UNISWAP_V3_POOL_ABI)

    def read_fee_bps(self) -> Decimal:
        if self._fee_bps is None:
            self._fee_bps = fee_pips_to_bps(self.pool.functions.fee().call())
            logger.info(f"[DEX] pool fee {self._fee_bps} bps")
        return self._fee_bps

    def read_tick_spacing(self) -> int:
        if self._tick_spacing is None:
            self._tick_spacing = int(self.pool.functions.tickSpacing().call())
        return self._tick_spacing

    def read_initialized_ticks(self, tick: int, tick_spacing: int) -> List[TickLiquidity]:
        """Initialized ticks within ``tick_window_words`` bitmap words of ``tick``."""
        compressed = tick // tick_spacing
        center_word = compressed >> 8
        found: List[TickLiquidity] = []
        for word in range(
            center_word - self.tick_window_words, center_word + self.tick_window_words + 1
        ):
            bitmap = self.pool.functions.tickBitmap(word).call()
            if not bitmap:
                continue
            for bit in range(256):
                if bitmap >> bit & 1:
                    index = ((word << 8) + bit) * tick_spacing
                    info = self.pool.functions.ticks(index).call()
                    found.append(TickLiquidity(index=index, liquidity_net=int(info[1])))
        return found

    def read_state(self) -> PoolState:
        """Read a full snapshot synchronously."""
        slot0 = self.pool.functions.slot0().call()
        liquidity = self.pool.functions.liquidity().call()
        fee_bps = self.read_fee_bps()
        tick_spacing = self.read_tick_spacing()
        sqrt_price_x96, tick = int(slot0[0]), int(slot0[1])

        ticks: Tuple[TickLiquidity, ...] = ()
        if self.tick_window_words > 0:
            ticks = tuple(self.read_initialized_ticks(tick, tick_spacing))

        return PoolState(
            sqrt_price_x96=sqrt_price_x96,
            liquidity=int(liquidity),
            tick=tick,
            fee_bps=fee_bps,
            token0_decimals=self.token0_decimals,
            token1_decimals=self.token1_decimals,
            base_is_token0=self.base_is_token0,
            tick_spacing=tick_spacing,
            ticks=ticks,
            observed_at=self.time_provider.monotonic(),
        )

    async def fetch(self) -> PoolState:
        """Async version: read the snapshot in a worker thread."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.read_state)
        except Exception as e:
            raise FeedError(
                f"Failed to read pool {self.pool_address}: {e}",
                feed="pool",
                endpoint=self.pool_address,
            ) from e


class Web3GasReader:
    """Reads the network gas price (eth_gasPrice) in gwei."""

    def __init__(self, web3: Web3):
        self.web3 = web3

    def read_gas_price_gwei(self) -> Decimal:
        return Decimal(self.web3.eth.gas_price) / WEI_PER_GWEI

    async def fetch(self) -> Decimal:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.read_gas_price_gwei)
        except Exception as e:
            raise FeedError(f"Failed to read gas price: {e}", feed="gas") from e


class FixedGasReader:
    """Gas reader returning a configured override; never touches the chain."""

    def __init__(self, gas_price_gwei: Decimal):
        self.gas_price_gwei = Decimal(gas_price_gwei)

    async def fetch(self) -> Decimal:
        return self.gas_price_gwei
