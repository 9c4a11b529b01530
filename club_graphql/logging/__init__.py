"""
Logging system for club_graphql.

This module provides console and file logging with credential masking,
structured JSON output and per-component levels.
"""

from .filters import ComponentFilter, RateLimitFilter, SensitiveDataFilter
from .formatters import ColoredFormatter, StructuredFormatter
from .handlers import MetricsHandler
from .manager import (
    LoggingManager,
    cleanup_logging,
    get_logger,
    get_logging_metrics,
    setup_logging,
)

__all__ = [
    "LoggingManager",
    "setup_logging",
    "get_logger",
    "get_logging_metrics",
    "cleanup_logging",
    "StructuredFormatter",
    "ColoredFormatter",
    "MetricsHandler",
    "SensitiveDataFilter",
    "RateLimitFilter",
    "ComponentFilter",
]
