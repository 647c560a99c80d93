"""Observability module for the TWAP oracle service."""

from .tracing import init_tracing, get_tracer
from .metrics import init_metrics, get_metrics, metrics_handler
from .logging import configure_logging

__all__ = [
    "init_tracing",
    "get_tracer",
    "init_metrics",
    "get_metrics",
    "metrics_handler",
    "configure_logging",
]
