"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from parallelizer.observability.logging import setup_logging
from parallelizer.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from parallelizer.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
