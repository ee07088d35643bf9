"""
Prometheus metrics for monitoring and observability.

Provides counters, histograms, and gauges for tracking:
- Staging requests and their outcome
- Tables and rows produced by staging
- SQL gateway queries and latency
- Live datasets
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

from jsonstage.config.settings import get_settings

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

staging_requests_total = Counter(
    "staging_requests_total",
    "Total number of documents submitted for staging",
    ["status"],  # success/validation_error/schema_inference_error/...
    registry=REGISTRY,
)

staged_tables_total = Counter(
    "staged_tables_total",
    "Total number of tables created by staging",
    registry=REGISTRY,
)

staged_rows_total = Counter(
    "staged_rows_total",
    "Total number of rows present after staging",
    registry=REGISTRY,
)

gateway_queries_total = Counter(
    "gateway_queries_total",
    "Total number of SQL statements submitted to the gateway",
    ["query_type", "status"],  # select/cte/..., success/rejected/failure
    registry=REGISTRY,
)

# ========== Histograms ==========

staging_duration_seconds = Histogram(
    "staging_duration_seconds",
    "Time to stage one document",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

gateway_query_duration_seconds = Histogram(
    "gateway_query_duration_seconds",
    "Time to validate and execute one gateway statement",
    ["query_type"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.15, 0.5, 1.0, 2.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

active_datasets = Gauge(
    "active_datasets",
    "Number of datasets currently held by the dataset manager",
    registry=REGISTRY,
)


def metrics_enabled() -> bool:
    """Whether metric recording is switched on."""
    return get_settings().metrics_enabled


# ========== Metric Decorators ==========

def track_staging_time(func: Callable):
    """
    Decorator to track staging latency and outcome.

    The outcome label is the ``error_type`` of a raised staging error, or
    ``success``.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        status = "success"
        try:
            return func(*args, **kwargs)
        except Exception as e:
            status = getattr(e, "error_type", "failure")
            raise
        finally:
            if metrics_enabled():
                staging_duration_seconds.observe(time.time() - start_time)
                staging_requests_total.labels(status=status).inc()

    return wrapper


def track_query_time(func: Callable):
    """
    Decorator to track gateway query latency.

    The wrapped callable must return an object with a ``query_type``
    attribute; rejected and failed statements are counted by the
    ``query_type`` carried on the raised error, when present.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        status = "success"
        query_type = "unknown"
        try:
            result = func(*args, **kwargs)
            query_type = getattr(result, "query_type", query_type)
            return result
        except Exception as e:
            status = "rejected" if getattr(e, "rejected", False) else "failure"
            query_type = getattr(e, "query_type", None) or query_type
            raise
        finally:
            if metrics_enabled():
                gateway_query_duration_seconds.labels(
                    query_type=query_type).observe(time.time() - start_time)
                gateway_queries_total.labels(
                    query_type=query_type, status=status).inc()

    return wrapper


def record_staged(table_count: int, row_count: int) -> None:
    """Record the tables and rows produced by one staging run."""
    if metrics_enabled():
        staged_tables_total.inc(table_count)
        staged_rows_total.inc(row_count)


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
