"""
Async FTP client built on asyncio streams.

This package provides a session-level FTP client (RFC 959 with FEAT, EPSV,
TLS, MLSD and PRET extensions) that hides the control/data channel split and
the quirks of heterogeneous servers.

Features:
- Explicit and implicit FTPS, with TLS on data channels
- Passive mode with automatic EPSV to PASV fallback
- Resumable RETR/STOR, APPE, listings and a directory walker
- Structured exceptions carrying server reply codes
- Pydantic configuration loaded from files and the environment
"""

from .exceptions import (
    ErrorHandler,
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPFileNotFoundError,
    FTPFormatError,
    FTPListingParseError,
    FTPPermissionError,
    FTPProtocolError,
    FTPSessionError,
    FTPTimeoutError,
)
from .ftp import (
    DataStream,
    DialOptions,
    Entry,
    EntryType,
    ServerConnection,
    StatusCode,
    TLSMode,
    Walker,
    connect,
    dial,
    dial_timeout,
    download_file,
    upload_file,
)

__version__ = "0.1.0"
__author__ = "FTP Session Team"

__all__ = [
    # Session
    "dial",
    "connect",
    "dial_timeout",
    "ServerConnection",
    "DataStream",
    "Walker",
    "download_file",
    "upload_file",
    # Models
    "DialOptions",
    "Entry",
    "EntryType",
    "StatusCode",
    "TLSMode",
    # Exceptions
    "FTPSessionError",
    "FTPError",
    "FTPConnectionError",
    "FTPTimeoutError",
    "FTPProtocolError",
    "FTPAuthenticationError",
    "FTPFileNotFoundError",
    "FTPPermissionError",
    "FTPFormatError",
    "FTPListingParseError",
    "ErrorHandler",
]
