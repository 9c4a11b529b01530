"""
Configuration management for club_graphql.

This module provides the transport configuration value object and the
settings models, plus a loader for configuration files and environment
variables.
"""

from .loader import ConfigLoader
from .models import (
    ClientSettings,
    GlobalConfig,
    LoggingConfig,
    LogLevel,
    TransportConfig,
)

__all__ = [
    "TransportConfig",
    "ClientSettings",
    "LoggingConfig",
    "LogLevel",
    "GlobalConfig",
    "ConfigLoader",
]
