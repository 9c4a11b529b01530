"""
Logging manager for club_graphql.

Handlers are attached to the ``club_graphql`` package logger, not the root
logger, so an embedding application keeps control of its own logging.
Records still propagate to the root logger.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Dict, Optional

from ..config.models import LoggingConfig, LogLevel
from .filters import ComponentFilter, RateLimitFilter, SensitiveDataFilter
from .formatters import ColoredFormatter, StructuredFormatter
from .handlers import PACKAGE_LOGGER, MetricsHandler


class LoggingManager:
    """Installs and removes the package's log handlers."""

    def __init__(self, logger_name: str = PACKAGE_LOGGER) -> None:
        self.logger_name = logger_name
        self._configured = False
        self._handlers: Dict[str, logging.Handler] = {}
        self._component_levels: Dict[str, int] = {}

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(self.logger_name)

    def setup_logging(self, config: LoggingConfig) -> None:
        """
        Configure package logging. Calling again replaces the previous setup.

        Args:
            config: Logging configuration
        """
        if self._configured:
            self.cleanup()

        level = getattr(logging, config.level.value)
        self.logger.setLevel(level)

        if config.enable_console:
            self._setup_console_handler(config, level)
        if config.enable_file and config.file_path:
            self._setup_file_handler(config, level)
        self._setup_metrics_handler()

        for component, component_level in config.component_levels.items():
            self.set_level(component_level, component)

        self._configured = True
        self.logger.debug("Logging system configured")

    def _setup_console_handler(self, config: LoggingConfig, level: int) -> None:
        handler = logging.StreamHandler(sys.stderr)
        formatter: logging.Formatter
        if config.enable_structured:
            formatter = StructuredFormatter()
        else:
            formatter = ColoredFormatter(config.format)
        handler.setFormatter(formatter)
        handler.setLevel(level)

        handler.addFilter(SensitiveDataFilter())
        handler.addFilter(RateLimitFilter(max_messages_per_second=10))

        self.add_handler("console", handler)

    def _setup_file_handler(self, config: LoggingConfig, level: int) -> None:
        log_path = Path(str(config.file_path))
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        formatter: logging.Formatter
        if config.enable_structured:
            formatter = StructuredFormatter()
        else:
            formatter = logging.Formatter(config.format)
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler.addFilter(SensitiveDataFilter())

        self.add_handler("file", handler)

    def _setup_metrics_handler(self) -> None:
        handler = MetricsHandler()
        handler.setLevel(logging.INFO)
        self.add_handler("metrics", handler)

    def _component_logger_name(self, component: str) -> str:
        if component == self.logger_name or component.startswith(f"{self.logger_name}."):
            return component
        return f"{self.logger_name}.{component}"

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get the logger of a client component.

        Args:
            name: Component (``websocket``) or full logger name

        Returns:
            Logger instance
        """
        return logging.getLogger(self._component_logger_name(name))

    def set_level(self, level: LogLevel, component: Optional[str] = None) -> None:
        """
        Set logging level.

        Args:
            level: New logging level
            component: Component such as ``websocket`` or ``auth`` (None for
                the whole package)
        """
        log_level = getattr(logging, level.value)

        if component:
            name = self._component_logger_name(component)
            logging.getLogger(name).setLevel(log_level)
            self._component_levels[name] = log_level
            return

        self.logger.setLevel(log_level)
        for name, handler in self._handlers.items():
            if name != "metrics":
                handler.setLevel(log_level)

    def only_components(self, *components: str) -> None:
        """Restrict the console handler to records from the given components."""
        handler = self._handlers.get("console")
        if handler is None:
            return
        for existing in [f for f in handler.filters if isinstance(f, ComponentFilter)]:
            handler.removeFilter(existing)
        handler.addFilter(
            ComponentFilter([self._component_logger_name(c) for c in components])
        )

    def add_handler(self, name: str, handler: logging.Handler) -> None:
        """
        Attach a named handler to the package logger.

        Args:
            name: Handler name
            handler: Logging handler
        """
        self.remove_handler(name)
        self.logger.addHandler(handler)
        self._handlers[name] = handler

    def remove_handler(self, name: str) -> None:
        handler = self._handlers.pop(name, None)
        if handler is not None:
            self.logger.removeHandler(handler)
            handler.close()

    def cleanup(self) -> None:
        """Remove every handler this manager installed and reset component levels."""
        for name in list(self._handlers):
            self.remove_handler(name)
        for name in self._component_levels:
            logging.getLogger(name).setLevel(logging.NOTSET)
        self._component_levels.clear()
        self._configured = False

    def get_metrics(self) -> Dict[str, int]:
        """Per-component log counts, empty before setup."""
        metrics_handler = self._handlers.get("metrics")
        if isinstance(metrics_handler, MetricsHandler):
            return metrics_handler.get_metrics()
        return {}

    def is_configured(self) -> bool:
        return self._configured


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Setup logging with configuration.

    Args:
        config: Logging configuration (defaults when omitted)
    """
    _logging_manager.setup_logging(config or LoggingConfig())


def get_logger(name: str) -> logging.Logger:
    """Get the logger of a client component."""
    return _logging_manager.get_logger(name)


def get_logging_metrics() -> Dict[str, int]:
    """Get metrics from the global logging manager."""
    return _logging_manager.get_metrics()


def cleanup_logging() -> None:
    """Cleanup logging system."""
    _logging_manager.cleanup()
