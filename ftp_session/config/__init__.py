"""
Configuration management for ftp_session.

This module provides configuration models and loading from files and
environment variables.
"""

from .loader import ConfigLoader
from .models import ClientConfig, GlobalConfig, LoggingConfig, LogLevel

__all__ = [
    "ConfigLoader",
    "GlobalConfig",
    "ClientConfig",
    "LoggingConfig",
    "LogLevel",
]
