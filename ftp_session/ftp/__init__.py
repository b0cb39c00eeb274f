"""
FTP client session engine.

This package provides:
- Control channel framing with multi-line reply handling
- Feature negotiation (FEAT, UTF8, PRET, MLST) and explicit/implicit TLS
- Passive data channels with a sticky EPSV to PASV fallback
- Transfers with REST resume and strict reply sequencing
- Directory listings, a depth-first walker and recursive removal
"""

from .connection import (
    DEFAULT_PORT,
    ServerConnection,
    connect,
    dial,
    dial_timeout,
    parse_epsv_response,
    parse_pasv_response,
    parse_quoted_path,
)
from .control import ControlConnection
from .models import (
    DialOptions,
    Entry,
    EntryType,
    StatusCode,
    TLSMode,
    status_text,
)
from .operations import download_file, upload_file
from .parser import (
    ListingFormat,
    parse_dir_list_line,
    parse_hosted_ftp_line,
    parse_line,
    parse_list_line,
    parse_ls_list_line,
    parse_rfc3659_list_line,
)
from .transfer import DataConnection, DataStream
from .walker import Walker

__all__ = [
    # Session
    "dial",
    "connect",
    "dial_timeout",
    "DEFAULT_PORT",
    "ServerConnection",
    "ControlConnection",
    "DataConnection",
    "DataStream",
    "Walker",
    # Models
    "DialOptions",
    "Entry",
    "EntryType",
    "StatusCode",
    "TLSMode",
    "status_text",
    # Reply parsing
    "parse_epsv_response",
    "parse_pasv_response",
    "parse_quoted_path",
    # Listing parsers
    "ListingFormat",
    "parse_line",
    "parse_list_line",
    "parse_rfc3659_list_line",
    "parse_ls_list_line",
    "parse_dir_list_line",
    "parse_hosted_ftp_line",
    # File helpers
    "download_file",
    "upload_file",
]
