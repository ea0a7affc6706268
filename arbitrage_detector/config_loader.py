"""
Configuration loading and normalization for the arbitrage detector.

Loads a YAML file, applies environment variable overrides, validates the result
against the Pydantic schema and builds the runtime policy objects from it.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
import yaml

from cex.constants import taker_fee_bps
from dex.slippage import SlippageModel, build_slippage_model

from .config_schema import DetectorConfig, validate_detector_config
from .exceptions import ConfigurationError
from .feed_state import BackoffPolicy
from .models import CostInputs
from .sizing import FixedSizePolicy, LadderSizePolicy, SizePolicy, TargetPriceSizePolicy
from .utils import set_nested_value

# Environment variable -> dotted config path
ENV_OVERRIDES: Dict[str, str] = {
    "RPC_URL": "pool.rpc_url",
    "CEX_WS_URL": "cex.ws_url",
    "PAIR": "pair.symbol",
    "POOL_ADDRESS": "pool.address",
    "MIN_PNL_USDC": "thresholds.min_pnl",
    "GAS_UNITS": "costs.gas_units",
    "GAS_MULTIPLIER": "costs.gas_multiplier",
}


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            raise ConfigurationError(f"Empty configuration file: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        return config_dict
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e


def apply_env_overrides(
    config_dict: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Apply environment variable overrides in place and return the dict.

    PAIR accepts "ETH/USDC" style values and also fills pair.base/pair.quote.
    """
    environ = os.environ if environ is None else environ
    for env_name, key_path in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        set_nested_value(config_dict, key_path, value.strip())
        if env_name == "PAIR" and "/" in value:
            base, quote = value.strip().split("/", 1)
            set_nested_value(config_dict, "pair.base", base.upper())
            set_nested_value(config_dict, "pair.quote", quote.upper())
    return config_dict


def load_detector_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DetectorConfig:
    """
    Load, override and validate the detector configuration.

    Args:
        config_path: Optional YAML file; defaults are used when omitted
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated DetectorConfig

    Raises:
        ConfigurationError: If the configuration cannot be loaded or is invalid
    """
    config_dict = load_yaml_config(config_path) if config_path is not None else {}
    apply_env_overrides(config_dict, environ)
    try:
        return validate_detector_config(config_dict)
    except pydantic.ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e


# ============================================================================
# Runtime objects built from configuration
# ============================================================================


def cex_fee_bps(config: DetectorConfig) -> Decimal:
    if config.cex.fee_bps is not None:
        return config.cex.fee_bps
    return taker_fee_bps(config.cex.exchange)


def cost_inputs(config: DetectorConfig) -> CostInputs:
    return CostInputs(
        cex_fee_bps=cex_fee_bps(config),
        gas_units=config.costs.gas_units,
        gas_price_gwei=config.costs.gas_price_gwei_override,
        gas_multiplier=config.costs.gas_multiplier,
        min_pnl=config.thresholds.min_pnl,
        native_price_override=config.costs.native_price_override,
    )


def size_policy(config: DetectorConfig) -> SizePolicy:
    sizing = config.sizing
    if sizing.policy == "fixed":
        return FixedSizePolicy(sizing.trade_size)
    if sizing.policy == "target_price":
        return TargetPriceSizePolicy(sizing.max_size)
    return LadderSizePolicy(sizing.min_size, sizing.max_size, sizing.steps)


def slippage_model(config: DetectorConfig) -> SlippageModel:
    return build_slippage_model(
        config.slippage.model,
        coefficient=config.slippage.coefficient,
        max_tick_excursion=config.slippage.max_tick_excursion,
    )


def backoff_policy(config: DetectorConfig) -> BackoffPolicy:
    feeds = config.feeds
    return BackoffPolicy(
        base_delay=feeds.backoff_base,
        max_delay=feeds.backoff_max,
        factor=feeds.backoff_factor,
        reset_after=feeds.backoff_reset_after,
    )
