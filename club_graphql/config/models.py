"""
Configuration models for club_graphql.

This module defines all configuration data models with validation and defaults.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _require_absolute_url(value: str, schemes: tuple[str, ...], field_name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in schemes or not parsed.netloc:
        allowed = " or ".join(f"{scheme}://" for scheme in schemes)
        raise ValueError(f"{field_name} must be an absolute {allowed} URL, got {value!r}")
    return value


class TransportConfig(BaseModel):
    """
    Endpoints used by the request client and the socket client.

    Supplied once by the embedding application. The absence of
    ``socket_endpoint`` disables subscriptions for the lifetime of the
    configuration.
    """

    http_endpoint: str = Field(description="GraphQL HTTP endpoint (absolute URL)")
    socket_endpoint: Optional[str] = Field(
        default=None, description="GraphQL WebSocket endpoint for subscriptions"
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("http_endpoint")
    @classmethod
    def validate_http_endpoint(cls, v: str) -> str:
        """Validate that the HTTP endpoint is an absolute http(s) URL."""
        return _require_absolute_url(v, ("http", "https"), "http_endpoint")

    @field_validator("socket_endpoint")
    @classmethod
    def validate_socket_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the socket endpoint uses a WebSocket scheme."""
        if v is None or v == "":
            return None
        return _require_absolute_url(v, ("ws", "wss"), "socket_endpoint")

    @property
    def subscriptions_enabled(self) -> bool:
        """Whether this configuration allows subscriptions at all."""
        return self.socket_endpoint is not None


class ClientSettings(BaseModel):
    """Tuning knobs shared by the request client and the socket client."""

    user_agent: str = Field(
        default="club-graphql/1.0", description="User-Agent sent with every request"
    )
    default_headers: Dict[str, str] = Field(
        default_factory=dict, description="Headers added to every HTTP request"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    origin: Optional[str] = Field(
        default=None,
        description="Origin header sent with requests and the socket upgrade",
    )

    # Socket settings
    connect_timeout: float = Field(
        default=10.0, ge=1.0, description="WebSocket handshake timeout in seconds"
    )
    socket_ack_timeout: float = Field(
        default=10.0, ge=1.0, description="Seconds to wait for connection_ack"
    )
    socket_ping_interval: Optional[float] = Field(
        default=None, ge=1.0, description="Client keep-alive ping interval (None disables)"
    )
    max_message_size: int = Field(
        default=4 * 1024 * 1024, ge=1024, description="Maximum WebSocket message size"
    )

    # Auth routes
    auth_path: str = Field(
        default="/api/v1/auth", description="Path of the auth session routes"
    )
    auth_timeout: float = Field(
        default=5.0, ge=0.1, description="Default auth request timeout in seconds"
    )
    refresh_timeout: float = Field(
        default=3.0, ge=0.1, description="Session refresh timeout in seconds"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Default logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    file_path: Optional[Path] = Field(default=None, description="Log file path")
    max_file_size: int = Field(
        default=10 * 1024 * 1024, description="Max log file size in bytes"
    )
    backup_count: int = Field(default=5, description="Number of backup log files")
    enable_console: bool = Field(default=True, description="Enable console logging")
    enable_file: bool = Field(default=False, description="Enable file logging")
    enable_structured: bool = Field(
        default=False, description="Enable structured JSON logging"
    )

    # Component-specific log levels
    component_levels: Dict[str, LogLevel] = Field(
        default_factory=dict, description="Per-component log levels"
    )


class GlobalConfig(BaseModel):
    """Everything the embedding application may configure in one place."""

    transport: Optional[TransportConfig] = Field(
        default=None, description="GraphQL endpoints"
    )
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
