"""
Configuration schema validation using Pydantic
"""

from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cex.constants import BINANCE_WS_ENDPOINT

# Uniswap V3 USDC/WETH 0.05% pool on Ethereum mainnet
DEFAULT_POOL_ADDRESS = "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PairConfig(_Section):
    """Traded pair"""

    symbol: str = Field(default="ETHUSDC", description="Exchange pair symbol")
    base: str = Field(default="ETH", description="Base asset name")
    quote: str = Field(default="USDC", description="Quote asset name")

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        normalized = v.replace("/", "").replace("-", "").upper()
        if len(normalized) < 4:
            raise ValueError(f"Invalid pair symbol: {v}")
        return normalized


class PoolConfig(_Section):
    """Uniswap V3 pool identity and chain access"""

    address: str = Field(default=DEFAULT_POOL_ADDRESS)
    rpc_url: Optional[str] = Field(default=None, description="HTTP RPC endpoint")
    token0_decimals: int = Field(ge=0, le=36, default=6)
    token1_decimals: int = Field(ge=0, le=36, default=18)
    base_is_token0: bool = False
    fee_bps: Optional[Decimal] = Field(
        ge=0, lt=10000, default=None, description="Override of the pool's fee() reading"
    )
    tick_window_words: int = Field(
        ge=0, le=16, default=0, description="Tick bitmap words read each side of the price"
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        if not (v.startswith("0x") and len(v) == 42):
            raise ValueError(f"Invalid pool address: {v}")
        return v


class CexConfig(_Section):
    """Centralized exchange feed"""

    exchange: Literal["binance", "binanceus"] = "binance"
    ws_url: str = Field(default=BINANCE_WS_ENDPOINT)
    stream: Optional[str] = Field(default=None, description="Override stream name")
    fee_bps: Optional[Decimal] = Field(
        ge=0, le=10000, default=None, description="Taker fee; defaults per exchange"
    )


class CostsConfig(_Section):
    """Gas cost settings"""

    gas_units: int = Field(ge=0, default=350000)
    gas_multiplier: Decimal = Field(ge=0, le=10, default=Decimal("1.0"))
    gas_price_gwei_override: Optional[Decimal] = Field(ge=0, default=None)
    native_price_override: Optional[Decimal] = Field(ge=0, default=None)


class SizingConfig(_Section):
    """Trade-size policy"""

    policy: Literal["fixed", "ladder", "target_price"] = "ladder"
    trade_size: Decimal = Field(gt=0, default=Decimal("1"))
    min_size: Decimal = Field(gt=0, default=Decimal("0.05"))
    max_size: Decimal = Field(gt=0, default=Decimal("5"))
    steps: int = Field(ge=1, le=64, default=8)

    @model_validator(mode="after")
    def validate_range(self):
        if self.max_size < self.min_size:
            raise ValueError("sizing.max_size must be >= sizing.min_size")
        return self


class SlippageConfig(_Section):
    """Pool price-impact model"""

    model: Literal["constant", "tick_walk"] = "constant"
    coefficient: Decimal = Field(ge=0, le=100, default=Decimal("1"))
    max_tick_excursion: int = Field(ge=1, le=100000, default=2000)


class ThresholdsConfig(_Section):
    """Emit threshold and staleness limits"""

    min_pnl: Decimal = Field(ge=0, default=Decimal("0"), description="Quote currency")
    max_book_age: float = Field(gt=0, default=5.0)
    max_pool_age: float = Field(gt=0, default=30.0)


class FeedsConfig(_Section):
    """Cadences, timeouts and reconnect backoff"""

    evaluation_interval: float = Field(gt=0, default=1.0)
    wake_on_book_update: bool = False
    pool_poll_interval: float = Field(gt=0, default=5.0)
    gas_poll_interval: float = Field(gt=0, default=12.0)
    rpc_timeout: float = Field(gt=0, default=10.0)
    connect_timeout: float = Field(gt=0, default=10.0)
    read_timeout: float = Field(gt=0, default=30.0)
    backoff_base: float = Field(gt=0, default=1.0)
    backoff_max: float = Field(gt=0, default=30.0)
    backoff_factor: float = Field(ge=1, default=2.0)
    backoff_reset_after: float = Field(ge=0, default=60.0)
    shutdown_grace: float = Field(ge=0, default=5.0)
    heartbeat_every: int = Field(ge=1, default=5)

    @model_validator(mode="after")
    def validate_backoff(self):
        if self.backoff_max < self.backoff_base:
            raise ValueError("feeds.backoff_max must be >= feeds.backoff_base")
        return self


class ObservabilityConfig(_Section):
    """Metrics exposure and console logging"""

    metrics_enabled: bool = False
    metrics_port: int = Field(ge=1, le=65535, default=8000)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    quiet_loggers: List[str] = Field(
        default_factory=lambda: ["aiohttp.access", "web3", "urllib3"]
    )


class DetectorConfig(_Section):
    """Complete detector configuration"""

    pair: PairConfig = Field(default_factory=PairConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    cex: CexConfig = Field(default_factory=CexConfig)
    costs: CostsConfig = Field(default_factory=CostsConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    slippage: SlippageConfig = Field(default_factory=SlippageConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def validate_detector_config(config_dict: Dict) -> DetectorConfig:
    """
    Validate a detector configuration dictionary

    Args:
        config_dict: Configuration dictionary to validate

    Returns:
        Validated DetectorConfig object

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return DetectorConfig.model_validate(config_dict)
