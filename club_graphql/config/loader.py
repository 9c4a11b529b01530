"""
Configuration loader for club_graphql.

Sources, lowest precedence first:

1. a YAML or JSON file: the path passed to ``load_config``, else the file
   named by ``CLUB_GRAPHQL_CONFIG``, else the first of the default locations
2. ``CLUB_GRAPHQL_*`` environment variables
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml

from ..exceptions import ConfigurationError
from .models import GlobalConfig

ENV_PREFIX = "CLUB_GRAPHQL_"
CONFIG_FILE_ENV = f"{ENV_PREFIX}CONFIG"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _parse_bool(value: str) -> Union[bool, str]:
    lower = value.strip().lower()
    if lower in _TRUE:
        return True
    if lower in _FALSE:
        return False
    # Left for pydantic to reject with a proper message
    return value


def _parse_number(value: str) -> Union[float, str]:
    try:
        return float(value)
    except ValueError:
        return value


def _parse_level(value: str) -> str:
    return value.strip().upper()


# Environment variable suffix -> (config path, converter)
ENV_VARIABLES: Dict[str, Tuple[Tuple[str, str], Callable[[str], Any]]] = {
    "HTTP_ENDPOINT": (("transport", "http_endpoint"), str),
    "SOCKET_ENDPOINT": (("transport", "socket_endpoint"), str),
    "USER_AGENT": (("client", "user_agent"), str),
    "ORIGIN": (("client", "origin"), str),
    "VERIFY_SSL": (("client", "verify_ssl"), _parse_bool),
    "CONNECT_TIMEOUT": (("client", "connect_timeout"), _parse_number),
    "SOCKET_ACK_TIMEOUT": (("client", "socket_ack_timeout"), _parse_number),
    "SOCKET_PING_INTERVAL": (("client", "socket_ping_interval"), _parse_number),
    "AUTH_PATH": (("client", "auth_path"), str),
    "LOG_LEVEL": (("logging", "level"), _parse_level),
    "LOG_FILE": (("logging", "file_path"), str),
    "LOG_FORMAT": (("logging", "format"), str),
    "LOG_STRUCTURED": (("logging", "enable_structured"), _parse_bool),
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


class ConfigLoader:
    """Builds a :class:`GlobalConfig` from a config file and the environment."""

    def __init__(self, search_paths: Optional[List[Path]] = None) -> None:
        """
        Initialize configuration loader.

        Args:
            search_paths: Files tried in order when no file is named
        """
        self.search_paths = search_paths or [
            Path("club_graphql.yaml"),
            Path("club_graphql.yml"),
            Path("club_graphql.json"),
            Path("config/club_graphql.yaml"),
            Path("config/club_graphql.json"),
            Path.home() / ".club_graphql" / "config.yaml",
            Path.home() / ".club_graphql" / "config.json",
        ]

    def load_config(
        self, config_file: Optional[Union[str, Path]] = None
    ) -> GlobalConfig:
        """
        Load configuration from all available sources.

        Args:
            config_file: Specific config file to load

        Returns:
            GlobalConfig instance with merged configuration

        Raises:
            ConfigurationError: If a named file is missing or unreadable, or
                the merged configuration is invalid
        """
        config_data = self._load_file(config_file)
        config_data = _merge(config_data, self.environment_overrides())

        try:
            return GlobalConfig(**config_data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def resolve_config_file(
        self, config_file: Optional[Union[str, Path]] = None
    ) -> Optional[Path]:
        """Path of the file ``load_config`` would read, or None."""
        named = config_file or os.environ.get(CONFIG_FILE_ENV)
        if named:
            path = Path(named)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            return path

        for path in self.search_paths:
            if path.exists():
                return path
        return None

    def _load_file(self, config_file: Optional[Union[str, Path]]) -> Dict[str, Any]:
        path = self.resolve_config_file(config_file)
        if path is None:
            return {}

        suffix = path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")

        try:
            text = path.read_text(encoding="utf-8")
            data = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def environment_overrides(self) -> Dict[str, Any]:
        """Nested config values taken from ``CLUB_GRAPHQL_*`` variables."""
        overrides: Dict[str, Any] = {}
        for suffix, ((section, key), convert) in ENV_VARIABLES.items():
            value = os.environ.get(f"{ENV_PREFIX}{suffix}")
            if value is None:
                continue
            overrides.setdefault(section, {})[key] = convert(value)
        return overrides

    def save_config(self, config: GlobalConfig, config_file: Union[str, Path]) -> None:
        """
        Write ``config`` as YAML or JSON, chosen by file extension.

        Unset optional values are omitted so the file reloads to the same
        configuration.
        """
        path = Path(config_file)
        suffix = path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")

        data = config.model_dump(mode="json", exclude_none=True)
        path.parent.mkdir(parents=True, exist_ok=True)
        if suffix == ".json":
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
