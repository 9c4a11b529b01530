"""
Custom logging filters for club_graphql.

This module provides filters for masking credentials that can appear in
transport logs (cookies, bearer tokens, passwords) and for rate limiting
noisy reconnect or warning loops.
"""

import logging
import re
import threading
import time
from collections import defaultdict
from typing import Dict, Iterable, List, Pattern, Tuple


class SensitiveDataFilter(logging.Filter):
    """Filter to mask sensitive data in log messages."""

    def __init__(self) -> None:
        """Initialize sensitive data filter."""
        super().__init__()

        self.rules: List[Tuple[Pattern[str], str]] = [
            # Cookie and Set-Cookie headers
            (
                re.compile(r"((?:set-)?cookie[\"']?\s*[:=]\s*[\"']?)([^\"'\n]+)", re.IGNORECASE),
                r"\1***MASKED***",
            ),
            # Session and access tokens
            (
                re.compile(
                    r"((?:access|refresh|session)[_-]?token[\"']?\s*[:=]\s*[\"']?)([^\s\"',;]+)",
                    re.IGNORECASE,
                ),
                r"\1***MASKED***",
            ),
            # Bearer tokens
            (re.compile(r"(bearer\s+)([a-zA-Z0-9._+/=-]{8,})", re.IGNORECASE), r"\1***MASKED***"),
            # Passwords
            (
                re.compile(r"((?:password|passwd|pwd)[\"']?\s*[:=]\s*[\"']?)([^\s\"',}]+)", re.IGNORECASE),
                r"\1***MASKED***",
            ),
            # URLs with credentials
            (re.compile(r"((?:https?|wss?)://[^:/\s]+):([^@\s]+)@", re.IGNORECASE), r"\1:***MASKED***@"),
        ]

    def mask(self, message: str) -> str:
        """Apply every masking rule to a message."""
        for pattern, replacement in self.rules:
            message = pattern.sub(replacement, message)
        return message

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log record to mask sensitive data."""
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args; let the handler report it
            return True

        record.msg = self.mask(message)
        record.args = ()
        return True


class RateLimitFilter(logging.Filter):
    """
    Drop repeats of the same message template within a time window.

    Records are keyed by logger and unformatted message, so a socket that
    fails the same way on every reconnect is reported once per interval
    with a count of the suppressed repeats.
    """

    def __init__(self, max_messages_per_second: float = 10.0):
        super().__init__()
        self.min_interval = 1.0 / max_messages_per_second
        self._last_seen: Dict[Tuple[str, str], float] = {}
        self._suppressed: Dict[Tuple[str, str], int] = defaultdict(int)
        self._lock = threading.Lock()

    def filter(self, record: logging.LogRecord) -> bool:
        key = (record.name, str(record.msg))
        now = time.monotonic()

        with self._lock:
            last = self._last_seen.get(key)
            if last is not None and now - last < self.min_interval:
                self._suppressed[key] += 1
                return False

            self._last_seen[key] = now
            suppressed = self._suppressed.pop(key, 0)

        if suppressed:
            record.msg = f"{record.getMessage()} (suppressed {suppressed} repeats)"
            record.args = ()
        return True


class ComponentFilter(logging.Filter):
    """Pass only records from the given logger name prefixes."""

    def __init__(self, prefixes: Iterable[str]) -> None:
        super().__init__()
        self.prefixes = tuple(prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        return any(
            record.name == prefix or record.name.startswith(f"{prefix}.")
            for prefix in self.prefixes
        )
