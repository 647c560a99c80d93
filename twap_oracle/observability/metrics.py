"""Prometheus Metrics for the TWAP oracle."""

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest
from aiohttp import web

# Global registry
REGISTRY = CollectorRegistry()

# Oracle metrics
submissions = Counter(
    "twap_oracle_submissions_total",
    "Price submissions by outcome",
    ["outcome"],
    registry=REGISTRY,
)

samples_written = Counter(
    "twap_oracle_samples_written_total",
    "Samples written to the ring",
    registry=REGISTRY,
)

queries = Counter(
    "twap_oracle_queries_total",
    "TWAP and volatility queries",
    ["query", "outcome"],
    registry=REGISTRY,
)

filled_samples = Gauge(
    "twap_oracle_filled_samples",
    "Written slots in the sample ring",
    registry=REGISTRY,
)

last_update_timestamp = Gauge(
    "twap_oracle_last_update_timestamp",
    "Clock reading of the last accepted submission",
    registry=REGISTRY,
)

# Resilience metrics
circuit_breaker_state = Gauge(
    "twap_oracle_circuit_breaker_state",
    "Circuit breaker state",
    ["name"],
    registry=REGISTRY,
)

retry_attempts = Counter(
    "twap_oracle_retry_attempts_total",
    "Retry attempts",
    ["operation", "outcome"],
    registry=REGISTRY,
)


class OracleMetrics:
    """Metrics accessor class."""

    submissions = submissions
    samples_written = samples_written
    queries = queries
    filled_samples = filled_samples
    last_update_timestamp = last_update_timestamp
    circuit_breaker_state = circuit_breaker_state
    retry_attempts = retry_attempts


_metrics = OracleMetrics()


def init_metrics() -> OracleMetrics:
    """Initialize metrics."""
    return _metrics


def get_metrics() -> OracleMetrics:
    """Get metrics instance."""
    return _metrics


async def metrics_handler(request: web.Request) -> web.Response:
    return web.Response(
        body=generate_latest(REGISTRY),
        content_type="text/plain",
    )
