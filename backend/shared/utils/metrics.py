"""
Prometheus metrics for the match monitor.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "mm_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "status"],
)
TRANSITIONS_DETECTED = Counter(
    "mm_transitions_detected_total",
    "Match state transitions detected by the change detector",
    ["kind"],
)
NOTIFICATIONS_SENT = Counter(
    "mm_notifications_sent_total",
    "Push messages accepted by the delivery gateway",
    ["type"],
)
NOTIFICATIONS_FAILED = Counter(
    "mm_notifications_failed_total",
    "Push messages rejected or lost in a failed batch",
    ["type"],
)
PREDICTIONS_RESOLVED = Counter(
    "mm_predictions_resolved_total",
    "Predictions moved out of pending",
    ["outcome"],
)
PREDICTIONS_UNRESOLVED = Counter(
    "mm_predictions_unresolved_total",
    "Predictions left pending by a sweep (no result found or save failed)",
)
JOB_ERRORS = Counter(
    "mm_job_errors_total",
    "Unhandled errors in a scheduler timer loop",
    ["job"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "mm_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
JOB_DURATION = Histogram(
    "mm_job_duration_seconds",
    "Wall time of one scheduler job run",
    ["job"],
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)

# ── Gauges ──────────────────────────────────────────────────────────────
LIVE_MATCHES = Gauge(
    "mm_live_matches",
    "Live matches seen by the last live-poll tick",
)
POLL_INTERVAL = Gauge(
    "mm_poll_interval_seconds",
    "Current delay between live-poll ticks",
)
STATE_CACHE_SIZE = Gauge(
    "mm_state_cache_entries",
    "Matches tracked in the in-memory state cache",
)
LEADERBOARD_RANKED = Gauge(
    "mm_leaderboard_ranked_users",
    "Users holding a rank after the last recompute",
    ["board"],
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        histogram.labels(**labels).observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
