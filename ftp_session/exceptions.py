"""
Exception hierarchy for the FTP session engine.

This module provides the custom exceptions raised by the control and data
channels, and the error handling utilities that classify transport failures
and server replies.
"""

from __future__ import annotations

import asyncio
import ssl
from typing import Any, Optional


class FTPSessionError(Exception):
    """
    Base exception for all FTP session operations.

    This is the root exception class for all errors raised by this package.

    Attributes:
        message: Human-readable error message
        host: Server the error relates to (if applicable)
        details: Additional error details as keyword arguments
    """

    def __init__(self, message: str, host: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.host = host
        self.details = kwargs


class FTPError(FTPSessionError):
    """Base exception for FTP operations."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        ftp_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, host, **kwargs)
        self.ftp_code = ftp_code


class FTPConnectionError(FTPError):
    """
    Raised when the control or data channel fails at the transport level.

    Covers refused connections, resets, TLS failures and an unexpected end of
    the control stream. The session should be abandoned after one of these.
    """

    pass


class FTPTimeoutError(FTPError):
    """Raised when dialing or a bounded data transfer times out."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        timeout_value: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message, host)
        self.timeout_value = timeout_value
        self.operation = operation


class FTPProtocolError(FTPError):
    """
    Raised when the server replies with a code outside the expected set.

    Attributes:
        code: Numeric reply code sent by the server
        reply: Reply text (multi-line replies joined with newlines)
    """

    def __init__(self, code: int, reply: str, host: Optional[str] = None) -> None:
        super().__init__(f"{code} {reply}", host, ftp_code=code)
        self.code = code
        self.reply = reply


class FTPAuthenticationError(FTPProtocolError):
    """Raised for FTP authentication failures (530)."""

    pass


class FTPFileNotFoundError(FTPProtocolError):
    """Raised when a file or directory is unavailable (450, 550)."""

    pass


class FTPPermissionError(FTPProtocolError):
    """Raised when a file name is not allowed (553)."""

    pass


class FTPFormatError(FTPError):
    """Raised when a server reply cannot be parsed (PASV, EPSV, PWD, SIZE)."""

    pass


class FTPListingParseError(FTPFormatError):
    """Raised when a directory listing line matches no known format."""

    pass


class ErrorHandler:
    """
    Utility class for classifying transport failures and server replies.

    Provides methods to convert low-level exceptions and reply codes to the
    exceptions above and to decide whether an operation may be retried.
    """

    _CODE_ERRORS = {
        530: FTPAuthenticationError,
        450: FTPFileNotFoundError,
        550: FTPFileNotFoundError,
        553: FTPPermissionError,
    }

    @staticmethod
    def protocol_error(
        code: int, reply: str, host: Optional[str] = None
    ) -> FTPProtocolError:
        """
        Create the FTPProtocolError subclass matching a reply code.

        Args:
            code: Reply code received from the server
            reply: Reply text
            host: Server the reply came from

        Returns:
            Appropriate FTPProtocolError subclass
        """
        error_class = ErrorHandler._CODE_ERRORS.get(code, FTPProtocolError)
        return error_class(code, reply, host)

    @staticmethod
    def handle_transport_error(
        error: BaseException, host: Optional[str] = None, operation: Optional[str] = None
    ) -> FTPError:
        """
        Convert socket, TLS and timeout exceptions to FTPError subclasses.

        Args:
            error: The original exception
            host: Server being talked to
            operation: The operation being performed

        Returns:
            Appropriate FTPError subclass
        """
        if isinstance(error, FTPError):
            return error

        error_msg = str(error) or error.__class__.__name__

        if isinstance(error, asyncio.TimeoutError):
            return FTPTimeoutError(
                f"FTP {operation or 'operation'} timed out", host=host, operation=operation
            )

        if isinstance(error, ssl.SSLError):
            return FTPConnectionError(f"FTP TLS error: {error_msg}", host=host)

        if isinstance(error, (OSError, EOFError)):
            return FTPConnectionError(f"FTP connection error: {error_msg}", host=host)

        return FTPError(f"Unexpected FTP error: {error_msg}", host=host)

    @staticmethod
    def is_retryable_ftp_error(error: Exception) -> bool:
        """
        Determine if an FTP error is retryable.

        Args:
            error: The FTP exception to check

        Returns:
            True if the error should be retried, False otherwise
        """
        # Connection and timeout errors are retryable on a fresh session
        if isinstance(error, (FTPConnectionError, FTPTimeoutError)):
            return True

        # Transient negative completion replies (4xx) are retryable
        if isinstance(error, FTPProtocolError):
            return 400 <= error.code < 500

        # Malformed replies will not improve on retry
        if isinstance(error, FTPFormatError):
            return False

        return False
