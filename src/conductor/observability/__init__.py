"""Observability exports: structured logging and in-memory metrics."""

from conductor.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)
from conductor.observability.metrics import MetricsRegistry

__all__ = [
    "LoggingConfig",
    "MetricsRegistry",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
