#!/usr/bin/env python3
"""
CEX/DEX Arbitrage Detector Runner

Streams the exchange top-of-book, polls the Uniswap V3 pool and gas price, and
logs opportunities that clear fees, price impact and gas.

Usage:
    # Defaults plus environment (RPC_URL, PAIR, POOL_ADDRESS, ...)
    python run_detector.py

    # YAML configuration with metrics exposed on :8000
    python run_detector.py --config config.example.yaml --metrics-port 8000

    # Single evaluation, then exit
    python run_detector.py --config config.example.yaml --once
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv
from web3 import Web3

import logging_config
from arbitrage_detector import VERSION
from arbitrage_detector.config_loader import (
    backoff_policy,
    cost_inputs,
    load_detector_config,
    size_policy,
    slippage_model,
)
from arbitrage_detector.config_schema import DetectorConfig
from arbitrage_detector.evaluator import ArbitrageEvaluator
from arbitrage_detector.exceptions import ConfigurationError
from arbitrage_detector.feeds import BookFeed, GasPoller, PoolPoller
from arbitrage_detector.metrics import DetectorMetrics
from arbitrage_detector.orchestrator import FeedOrchestrator
from arbitrage_detector.sinks import LoggingSink
from arbitrage_detector.state import SnapshotSlot
from cex.binance import BinanceBookSource
from cex.orderbook import OrderBookState
from dex.pool_client import FixedGasReader, UniswapV3PoolReader, Web3GasReader

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: DetectorConfig,
    web3: Web3,
    source=None,
    metrics: Optional[DetectorMetrics] = None,
) -> FeedOrchestrator:
    """Wire feeds, pollers, evaluator and sink from a validated configuration."""
    feeds = config.feeds
    costs = cost_inputs(config)

    book = OrderBookState(metrics=metrics)
    pool_slot = SnapshotSlot("pool")
    gas_slot = SnapshotSlot("gas")

    if source is None:
        source = BinanceBookSource(
            config.pair.symbol, ws_url=config.cex.ws_url, stream=config.cex.stream
        )
    book_feed = BookFeed(
        source,
        book,
        backoff=backoff_policy(config),
        connect_timeout=feeds.connect_timeout,
        read_timeout=feeds.read_timeout,
        name=config.cex.exchange,
        metrics=metrics,
    )

    pool_reader = UniswapV3PoolReader(
        web3,
        config.pool.address,
        token0_decimals=config.pool.token0_decimals,
        token1_decimals=config.pool.token1_decimals,
        base_is_token0=config.pool.base_is_token0,
        fee_bps=config.pool.fee_bps,
        tick_window_words=config.pool.tick_window_words,
    )
    pool_poller = PoolPoller(
        pool_reader,
        pool_slot,
        interval=feeds.pool_poll_interval,
        timeout=feeds.rpc_timeout,
        metrics=metrics,
    )

    if config.costs.gas_price_gwei_override is not None:
        gas_reader = FixedGasReader(config.costs.gas_price_gwei_override)
    else:
        gas_reader = Web3GasReader(web3)
    gas_poller = GasPoller(
        gas_reader,
        gas_slot,
        interval=feeds.gas_poll_interval,
        timeout=feeds.rpc_timeout,
        metrics=metrics,
    )

    evaluator = ArbitrageEvaluator(
        slippage_model(config),
        size_policy(config),
        max_pool_age=config.thresholds.max_pool_age,
        max_book_age=config.thresholds.max_book_age,
        metrics=metrics,
    )

    return FeedOrchestrator(
        evaluator,
        book,
        pool_slot,
        gas_slot,
        costs,
        sink=LoggingSink(base_symbol=config.pair.base),
        book_feed=book_feed,
        pool_poller=pool_poller,
        gas_poller=gas_poller,
        evaluation_interval=feeds.evaluation_interval,
        shutdown_grace=feeds.shutdown_grace,
        heartbeat_every=feeds.heartbeat_every,
        wake_on_book_update=feeds.wake_on_book_update,
        metrics=metrics,
    )


async def main() -> int:
    parser = argparse.ArgumentParser(description="CEX/DEX arbitrage detector")
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides YAML config)",
    )
    parser.add_argument(
        "--once", action="store_true", help="Exit after the first evaluation"
    )
    parser.add_argument(
        "--metrics-port", type=int, help="Expose Prometheus metrics on this port"
    )
    args = parser.parse_args()

    # Load environment variables
    load_dotenv()

    try:
        config = load_detector_config(args.config)
    except ConfigurationError as e:
        logging_config.setup()
        logger.error(f"Failed to load configuration: {e}")
        return 1

    logging_config.setup(
        args.log_level or config.observability.log_level,
        quiet=config.observability.quiet_loggers,
    )

    if not config.pool.rpc_url:
        logger.error("Set RPC_URL (or pool.rpc_url) to an Ethereum HTTP endpoint")
        return 1

    logger.info(
        f"[INIT] arbitrage-detector {VERSION} | pair={config.pair.symbol} "
        f"pool={config.pool.address} slippage={config.slippage.model} "
        f"sizing={config.sizing.policy} min_pnl={config.thresholds.min_pnl}"
    )

    metrics = None
    metrics_port = args.metrics_port or (
        config.observability.metrics_port if config.observability.metrics_enabled else None
    )
    if metrics_port:
        metrics = DetectorMetrics()
        await metrics.start_server(port=metrics_port)

    web3 = Web3(
        Web3.HTTPProvider(
            config.pool.rpc_url, request_kwargs={"timeout": config.feeds.rpc_timeout}
        )
    )

    try:
        orchestrator = build_orchestrator(config, web3, metrics=metrics)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (Windows)
            pass

    try:
        await orchestrator.run(max_evaluations=1 if args.once else None)
    except Exception as e:
        logger.error(f"Detector failed: {e}", exc_info=True)
        return 1
    finally:
        if metrics is not None:
            await metrics.stop_server()

    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
