"""
Logging setup for ftp_session.

This module provides credential masking, console and rotating file output,
and JSON structured records.
"""

from .filters import ComponentFilter, SensitiveDataFilter
from .formatters import ColoredFormatter, StructuredFormatter
from .manager import LoggingManager, cleanup_logging, get_logger, setup_logging

__all__ = [
    "LoggingManager",
    "setup_logging",
    "get_logger",
    "cleanup_logging",
    "StructuredFormatter",
    "ColoredFormatter",
    "SensitiveDataFilter",
    "ComponentFilter",
]
