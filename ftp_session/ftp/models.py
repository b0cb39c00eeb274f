"""
FTP data models and dial-time configuration.

This module defines the reply codes, the directory entry value returned by
listings, and the immutable option set a session is dialed with.
"""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

StreamPair = Tuple[asyncio.StreamReader, asyncio.StreamWriter]
DialFunc = Callable[[str, int], Awaitable[StreamPair]]


class StatusCode(IntEnum):
    """FTP reply codes (RFC 959, RFC 2228, RFC 2428, RFC 3659)."""

    # Positive preliminary
    INIT_OK = 100
    RESTART_MARKER = 110
    READY_MINUTE = 120
    ALREADY_OPEN = 125
    ABOUT_TO_SEND = 150

    # Positive completion
    COMMAND_OK = 200
    COMMAND_NOT_IMPLEMENTED = 202
    SYSTEM = 211
    DIRECTORY = 212
    FILE = 213
    HELP = 214
    NAME = 215
    READY = 220
    CLOSING = 221
    DATA_CONNECTION_OPEN = 225
    CLOSING_DATA_CONNECTION = 226
    PASSIVE_MODE = 227
    LONG_PASSIVE_MODE = 228
    EXTENDED_PASSIVE_MODE = 229
    LOGGED_IN = 230
    LOGGED_OUT = 231
    LOGOUT_ACK = 232
    AUTH_OK = 234
    REQUESTED_FILE_ACTION_OK = 250
    PATH_CREATED = 257

    # Positive intermediate
    USER_OK = 331
    LOGIN_NEED_ACCOUNT = 332
    REQUEST_FILE_PENDING = 350

    # Transient negative completion
    NOT_AVAILABLE = 421
    CAN_NOT_OPEN_DATA_CONNECTION = 425
    TRANSFER_ABORTED = 426
    INVALID_CREDENTIALS = 430
    HOST_UNAVAILABLE = 434
    FILE_ACTION_IGNORED = 450
    ACTION_ABORTED = 451
    INSUFFICIENT_STORAGE = 452

    # Permanent negative completion
    BAD_COMMAND = 500
    BAD_ARGUMENTS = 501
    NOT_IMPLEMENTED = 502
    BAD_SEQUENCE = 503
    NOT_IMPLEMENTED_PARAMETER = 504
    NOT_LOGGED_IN = 530
    STORING_NEED_ACCOUNT = 532
    FILE_UNAVAILABLE = 550
    PAGE_TYPE_UNKNOWN = 551
    EXCEEDED_STORAGE = 552
    BAD_FILE_NAME = 553

    # Protected replies
    INTEGRITY_PROTECTED = 631
    CONFIDENTIALITY_PROTECTED = 632


_STATUS_TEXT = {
    StatusCode.INIT_OK: "Service ready in nnn minutes.",
    StatusCode.RESTART_MARKER: "Restart marker reply.",
    StatusCode.READY_MINUTE: "Service ready in nnn minutes.",
    StatusCode.ALREADY_OPEN: "Data connection already open; transfer starting.",
    StatusCode.ABOUT_TO_SEND: "File status okay; about to open data connection.",
    StatusCode.COMMAND_OK: "Command okay.",
    StatusCode.COMMAND_NOT_IMPLEMENTED: "Command not implemented, superfluous at this site.",
    StatusCode.SYSTEM: "System status, or system help reply.",
    StatusCode.DIRECTORY: "Directory status.",
    StatusCode.FILE: "File status.",
    StatusCode.HELP: "Help message.",
    StatusCode.NAME: "NAME system type.",
    StatusCode.READY: "Service ready for new user.",
    StatusCode.CLOSING: "Service closing control connection.",
    StatusCode.DATA_CONNECTION_OPEN: "Data connection open; no transfer in progress.",
    StatusCode.CLOSING_DATA_CONNECTION: "Closing data connection. Requested file action successful.",
    StatusCode.PASSIVE_MODE: "Entering Passive Mode.",
    StatusCode.LONG_PASSIVE_MODE: "Entering Long Passive Mode.",
    StatusCode.EXTENDED_PASSIVE_MODE: "Entering Extended Passive Mode.",
    StatusCode.LOGGED_IN: "User logged in, proceed.",
    StatusCode.LOGGED_OUT: "User logged out; service terminated.",
    StatusCode.LOGOUT_ACK: "Logout command noted, will complete when transfer done.",
    StatusCode.AUTH_OK: "AUTH command OK. Expecting TLS Negotiation.",
    StatusCode.REQUESTED_FILE_ACTION_OK: "Requested file action okay, completed.",
    StatusCode.PATH_CREATED: "Path created.",
    StatusCode.USER_OK: "User name okay, need password.",
    StatusCode.LOGIN_NEED_ACCOUNT: "Need account for login.",
    StatusCode.REQUEST_FILE_PENDING: "Requested file action pending further information.",
    StatusCode.NOT_AVAILABLE: "Service not available, closing control connection.",
    StatusCode.CAN_NOT_OPEN_DATA_CONNECTION: "Can't open data connection.",
    StatusCode.TRANSFER_ABORTED: "Connection closed; transfer aborted.",
    StatusCode.INVALID_CREDENTIALS: "Invalid username or password.",
    StatusCode.HOST_UNAVAILABLE: "Requested host unavailable.",
    StatusCode.FILE_ACTION_IGNORED: "Requested file action not taken.",
    StatusCode.ACTION_ABORTED: "Requested action aborted. Local error in processing.",
    StatusCode.INSUFFICIENT_STORAGE: "Requested action not taken. Insufficient storage space in system.",
    StatusCode.BAD_COMMAND: "Syntax error, command unrecognized.",
    StatusCode.BAD_ARGUMENTS: "Syntax error in parameters or arguments.",
    StatusCode.NOT_IMPLEMENTED: "Command not implemented.",
    StatusCode.BAD_SEQUENCE: "Bad sequence of commands.",
    StatusCode.NOT_IMPLEMENTED_PARAMETER: "Command not implemented for that parameter.",
    StatusCode.NOT_LOGGED_IN: "Not logged in.",
    StatusCode.STORING_NEED_ACCOUNT: "Need account for storing files.",
    StatusCode.FILE_UNAVAILABLE: "File unavailable.",
    StatusCode.PAGE_TYPE_UNKNOWN: "Page type unknown.",
    StatusCode.EXCEEDED_STORAGE: "Exceeded storage allocation.",
    StatusCode.BAD_FILE_NAME: "File name not allowed.",
    StatusCode.INTEGRITY_PROTECTED: "Integrity protected reply.",
    StatusCode.CONFIDENTIALITY_PROTECTED: "Confidentiality protected reply.",
}


def status_text(code: int) -> str:
    """Return the standard phrase for a reply code, or "" if unknown."""
    try:
        return _STATUS_TEXT[StatusCode(code)]
    except ValueError:
        return ""


class TLSMode(str, Enum):
    """How TLS is applied to the control channel."""

    NONE = "none"
    IMPLICIT = "implicit"
    EXPLICIT = "explicit"


class EntryType(IntEnum):
    """Types of directory entries."""

    FILE = 0
    FOLDER = 1
    LINK = 2

    def __str__(self) -> str:
        return ("file", "folder", "link")[self.value]


@dataclass(frozen=True)
class Entry:
    """A file, folder or link returned by a listing."""

    name: str
    type: EntryType = EntryType.FILE
    size: int = 0
    time: Optional[datetime] = None
    target: str = ""


class DialOptions(BaseModel):
    """
    Options a session is dialed with.

    All options are resolved before the first network action and cannot be
    changed afterwards.
    """

    timeout: Optional[float] = Field(
        default=None, gt=0, description="Connect timeout in seconds"
    )
    dial_func: Optional[DialFunc] = Field(
        default=None,
        description="Coroutine function (host, port) -> (reader, writer) used for "
        "both control and data channels",
    )
    connection: Optional[Tuple[Any, Any]] = Field(
        default=None, description="Pre-established (reader, writer) control channel"
    )
    tls_mode: TLSMode = Field(default=TLSMode.NONE, description="TLS mode")
    tls_config: Optional[ssl.SSLContext] = Field(
        default=None, description="TLS context for control and data channels"
    )
    disable_epsv: bool = Field(default=False, description="Never try EPSV")
    disable_utf8: bool = Field(default=False, description="Skip OPTS UTF8 ON")
    disable_mlsd: bool = Field(default=False, description="Use LIST even if MLST is advertised")
    location: tzinfo = Field(
        default=timezone.utc, description="Timezone of listing timestamps"
    )
    debug_output: Optional[Any] = Field(
        default=None, description="Binary writer receiving a copy of control traffic"
    )
    encoding: str = Field(default="utf-8", description="Control channel encoding")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="before")
    @classmethod
    def default_tls_mode(cls, data: Any) -> Any:
        """A TLS context without an explicit mode means implicit TLS."""
        if (
            isinstance(data, dict)
            and data.get("tls_config") is not None
            and data.get("tls_mode") in (None, TLSMode.NONE, TLSMode.NONE.value)
        ):
            data = {**data, "tls_mode": TLSMode.IMPLICIT}
        return data

    @model_validator(mode="after")
    def check_tls(self) -> "DialOptions":
        """Ensure a TLS mode always comes with a context."""
        if self.tls_mode != TLSMode.NONE and self.tls_config is None:
            raise ValueError("tls_config is required when tls_mode is set")
        return self

    @property
    def uses_tls(self) -> bool:
        """Whether data channels are protected with TLS."""
        return self.tls_config is not None
