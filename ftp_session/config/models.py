"""
Configuration models for ftp_session.

This module defines the configuration data models with validation and
defaults, and turns client settings into session dial options.
"""

from __future__ import annotations

import ssl
from datetime import UTC, tzinfo
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..ftp.models import DialOptions, TLSMode


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


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

    # Component-specific log levels, e.g. {"ftp_session.ftp.control": "DEBUG"}
    component_levels: Dict[str, LogLevel] = Field(
        default_factory=dict, description="Per-component log levels"
    )


class ClientConfig(BaseModel):
    """Connection settings for one FTP server."""

    host: str = Field(default="localhost", description="Server host name or address")
    port: int = Field(default=21, ge=1, le=65535, description="Server port")
    username: str = Field(default="anonymous", description="Login user")
    password: str = Field(default="anonymous", description="Login password")
    timeout: Optional[float] = Field(
        default=30.0, gt=0, description="Connect timeout in seconds"
    )

    tls_mode: TLSMode = Field(default=TLSMode.NONE, description="TLS mode")
    ca_file: Optional[Path] = Field(default=None, description="CA bundle for TLS")
    verify_tls: bool = Field(default=True, description="Verify server certificates")

    disable_epsv: bool = Field(default=False, description="Never try EPSV")
    disable_utf8: bool = Field(default=False, description="Skip OPTS UTF8 ON")
    disable_mlsd: bool = Field(default=False, description="Always use LIST")
    timezone: str = Field(default="UTC", description="Timezone of listing timestamps")
    encoding: str = Field(default="utf-8", description="Control channel encoding")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names early."""
        if v.upper() == "UTC":
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    def location(self) -> tzinfo:
        if self.timezone.upper() == "UTC":
            return UTC
        return ZoneInfo(self.timezone)

    def ssl_context(self) -> Optional[ssl.SSLContext]:
        if self.tls_mode == TLSMode.NONE:
            return None
        context = ssl.create_default_context(
            cafile=str(self.ca_file) if self.ca_file else None
        )
        if not self.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def to_dial_options(self, **overrides: Any) -> DialOptions:
        """
        Build dial options from these settings.

        Args:
            **overrides: Extra DialOptions fields (dial_func, debug_output, ...)
        """
        fields: Dict[str, Any] = {
            "timeout": self.timeout,
            "tls_mode": self.tls_mode,
            "tls_config": self.ssl_context(),
            "disable_epsv": self.disable_epsv,
            "disable_utf8": self.disable_utf8,
            "disable_mlsd": self.disable_mlsd,
            "location": self.location(),
            "encoding": self.encoding,
        }
        fields.update(overrides)
        return DialOptions(**fields)


class GlobalConfig(BaseModel):
    """Global configuration container."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)

    model_config = ConfigDict(validate_assignment=True, extra="forbid")
