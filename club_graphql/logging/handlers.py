"""
Custom logging handlers for club_graphql.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from typing import Any, Dict, List

PACKAGE_LOGGER = "club_graphql"


def component_of(logger_name: str) -> str:
    """
    Map a logger name to the client component that emitted it.

    ``club_graphql.websocket.client`` becomes ``websocket``; loggers outside
    the package map to ``external``.
    """
    parts = logger_name.split(".")
    if parts[0] != PACKAGE_LOGGER:
        return "external"
    return parts[1] if len(parts) > 1 else "core"


class MetricsHandler(logging.Handler):
    """Counts log records per client component and level."""

    def __init__(self, recent_size: int = 200) -> None:
        super().__init__()
        self._metrics: Dict[str, int] = defaultdict(int)
        self._recent_problems: deque[Dict[str, Any]] = deque(maxlen=recent_size)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        component = component_of(record.name)
        level = record.levelname.lower()

        with self._lock:
            self._metrics["logs_total"] += 1
            self._metrics[f"logs_{level}"] += 1
            self._metrics[f"{component}_{level}"] += 1

            if record.levelno >= logging.WARNING:
                self._recent_problems.append(
                    {
                        "timestamp": time.time(),
                        "component": component,
                        "level": record.levelname,
                        "message": record.getMessage()[:200],
                    }
                )

    def get_metrics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._metrics)

    def get_recent_problems(self) -> List[Dict[str, Any]]:
        """Warnings and errors seen most recently, oldest first."""
        with self._lock:
            return list(self._recent_problems)

    def reset_metrics(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._recent_problems.clear()
