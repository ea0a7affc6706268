"""
Prometheus Metrics Server for the Arbitrage Detector

Exposes evaluation, feed health and opportunity metrics for monitoring and alerting.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Optional, Union

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .feed_state import FEED_STATE_CODES, FeedState

logger = logging.getLogger(__name__)


class DetectorMetrics:
    """
    Detector metrics collection and exposure

    Provides Prometheus-compatible metrics for:
    - Evaluation ticks and latency
    - Opportunities and best net PnL per direction
    - Stale-data skips and rejected book updates
    - Feed state, reconnects and poll failures
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        # Server components
        self._app = None
        self._runner = None
        self._site = None

        # Thread-safe access
        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === EVALUATION METRICS ===
        self.evaluations_total = Counter(
            "arbitrage_detector_evaluations_total",
            "Total evaluation ticks that ran the evaluator",
            registry=self.registry,
        )

        self.evaluation_latency_seconds = Histogram(
            "arbitrage_detector_evaluation_latency_seconds",
            "Wall time of one evaluation",
            buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1],
            registry=self.registry,
        )

        self.stale_skips_total = Counter(
            "arbitrage_detector_stale_skips_total",
            "Evaluation ticks skipped because a snapshot was stale",
            ["source"],
            registry=self.registry,
        )

        # === OPPORTUNITY METRICS ===
        self.opportunities_total = Counter(
            "arbitrage_detector_opportunities_total",
            "Opportunities emitted above the PnL threshold",
            ["direction"],
            registry=self.registry,
        )

        self.best_net_pnl = Gauge(
            "arbitrage_detector_best_net_pnl",
            "Best net PnL (quote currency) of the last evaluation per direction",
            ["direction"],
            registry=self.registry,
        )

        # === FEED METRICS ===
        self.book_rejections_total = Counter(
            "arbitrage_detector_book_rejections_total",
            "Order book updates rejected (crossed book, bad price)",
            ["reason"],
            registry=self.registry,
        )

        self.feed_state = Gauge(
            "arbitrage_detector_feed_state",
            "Feed connection state (0=disconnected 1=connecting 2=subscribed 3=streaming 4=backoff)",
            ["feed"],
            registry=self.registry,
        )

        self.reconnects_total = Counter(
            "arbitrage_detector_reconnects_total",
            "Feed reconnect attempts",
            ["feed"],
            registry=self.registry,
        )

        self.poll_failures_total = Counter(
            "arbitrage_detector_poll_failures_total",
            "Failed chain polls",
            ["source"],
            registry=self.registry,
        )

        self.snapshot_age_seconds = Gauge(
            "arbitrage_detector_snapshot_age_seconds",
            "Age of the snapshot used by the last evaluation",
            ["source"],
            registry=self.registry,
        )

        self.last_evaluation_timestamp = Gauge(
            "arbitrage_detector_last_evaluation_timestamp",
            "Unix timestamp of the last evaluation",
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_evaluation(self, duration_seconds: float):
        """Record one evaluation and its latency"""
        with self._lock:
            self.evaluations_total.inc()
            self.evaluation_latency_seconds.observe(duration_seconds)
            self.last_evaluation_timestamp.set(time.time())

    def record_opportunity(self, direction: str):
        with self._lock:
            self.opportunities_total.labels(direction=direction).inc()

    def record_best_net(self, direction: str, net_pnl: Union[Decimal, float]):
        with self._lock:
            self.best_net_pnl.labels(direction=direction).set(float(net_pnl))

    def record_stale_skip(self, source: Optional[str]):
        with self._lock:
            self.stale_skips_total.labels(source=source or "unknown").inc()

    def record_book_rejected(self, reason: str):
        with self._lock:
            self.book_rejections_total.labels(reason=reason).inc()

    def record_feed_state(self, feed: str, state: FeedState):
        with self._lock:
            self.feed_state.labels(feed=feed).set(FEED_STATE_CODES[state])

    def record_reconnect(self, feed: str):
        with self._lock:
            self.reconnects_total.labels(feed=feed).inc()

    def record_poll_failure(self, source: str):
        with self._lock:
            self.poll_failures_total.labels(source=source).inc()

    def update_snapshot_age(self, source: str, age_seconds: float):
        with self._lock:
            self.snapshot_age_seconds.labels(source=source).set(age_seconds)

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ):
        """Start Prometheus metrics HTTP server"""
        try:
            self._app = web.Application()
            self._app.router.add_get(path, self._metrics_handler)
            self._app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(self._app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"[INIT] metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self):
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        """Handle metrics endpoint requests"""
        metrics_output = generate_latest(self.registry)
        # Strip charset from content type to avoid conflicts with aiohttp
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        """Handle health check endpoint"""
        return web.json_response({"status": "healthy", "service": "arbitrage_detector"})
