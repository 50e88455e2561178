"""
Observability module - Logging, Metrics, and Tracing.
"""

from flikkt.observability.logging import get_logger, log_context, setup_logging
from flikkt.observability.metrics import metrics
from flikkt.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
