"""Public observability primitives: structured logging and stage metrics."""

from hookgate.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    flush_logging,
    get_active_logging_handle,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
    setup_hook_logging,
    setup_structured_logging,
    shutdown_logging,
)
from hookgate.observability.metrics import KNOWN_OPTIMIZATIONS, PerformanceTracker, StageExecution

__all__ = [
    "KNOWN_OPTIMIZATIONS",
    "LogRedactor",
    "LoggingConfig",
    "PerformanceTracker",
    "StageExecution",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_hook_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
