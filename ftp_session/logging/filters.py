"""
Custom logging filters for ftp_session.

This module provides filters for credential masking and component-specific
filtering.
"""

import logging
import re
from typing import List, Pattern, Set, Tuple


class SensitiveDataFilter(logging.Filter):
    """Filter to mask credentials in log messages."""

    def __init__(self) -> None:
        """Initialize sensitive data filter."""
        super().__init__()

        self.rules: List[Tuple[Pattern[str], str]] = [
            # Control channel password command, as traced by the session
            (re.compile(r"\b(PASS\s+)(\S+)"), r"\1***MASKED***"),
            # key=value and key: value pairs
            (
                re.compile(r'(password|passwd|pwd)["\s]*[:=]["\s]*([^\s"\']+)', re.IGNORECASE),
                r"\1: ***MASKED***",
            ),
            # URLs with credentials
            (re.compile(r"((?:ftps?|sftp)://[^:/@\s]+):([^@\s]+)@", re.IGNORECASE), r"\1:***MASKED***@"),
        ]

    def mask(self, message: str) -> str:
        for pattern, replacement in self.rules:
            message = pattern.sub(replacement, message)
        return message

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log record to mask sensitive data."""
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format arguments are reported by the handler itself
            return True

        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


class ComponentFilter(logging.Filter):
    """Filter for component-specific logging."""

    def __init__(self, component: str, allowed_levels: Set[str] | None = None) -> None:
        """
        Initialize component filter.

        Args:
            component: Logger name prefix to accept
            allowed_levels: Set of allowed log levels
        """
        super().__init__()
        self.component = component
        self.allowed_levels = allowed_levels or {
            "DEBUG",
            "INFO",
            "WARNING",
            "ERROR",
            "CRITICAL",
        }

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter based on component and level."""
        if not record.name.startswith(self.component):
            return False
        return record.levelname in self.allowed_levels
