"""
FTP session management for the ftp_session package.

This module provides dialing, authentication and capability negotiation,
passive data channel establishment and the command sequences of every
session operation.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import (
    ErrorHandler,
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPFormatError,
    FTPListingParseError,
)
from .control import ControlConnection
from .models import DialOptions, Entry, EntryType, StatusCode, StreamPair, TLSMode, status_text
from .parser import ListingFormat, parse_line
from .transfer import DataConnection, DataStream, copy_source
from .walker import Walker, child_path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 21

# Replies to OPTS UTF8 ON meaning UTF-8 is already on or cannot be negotiated
_UTF8_TOLERATED = (
    StatusCode.BAD_ARGUMENTS,
    StatusCode.NOT_IMPLEMENTED_PARAMETER,
    StatusCode.COMMAND_NOT_IMPLEMENTED,
)


def parse_epsv_response(line: str) -> int:
    """
    Extract the port from an EPSV reply such as
    ``Entering Extended Passive Mode (|||6446|)``.
    """
    start = line.find("|||")
    end = line.rfind("|")
    if start == -1 or end <= start + 2:
        raise FTPFormatError("invalid EPSV response format")
    try:
        return int(line[start + 3:end])
    except ValueError as e:
        raise FTPFormatError(f"invalid EPSV port: {line[start + 3:end]!r}") from e


def parse_pasv_response(line: str) -> Tuple[str, int]:
    """
    Extract host and port from a PASV reply such as
    ``Entering Passive Mode (192,168,1,1,15,155)``.
    """
    start = line.find("(")
    end = line.rfind(")")
    if start == -1 or end == -1 or end < start:
        raise FTPFormatError("invalid PASV response format")

    pasv_data = [part.strip() for part in line[start + 1:end].split(",")]
    if len(pasv_data) != 6:
        raise FTPFormatError("invalid PASV response format")

    try:
        port = int(pasv_data[4]) * 256 + int(pasv_data[5])
    except ValueError as e:
        raise FTPFormatError(f"invalid PASV port: {line!r}") from e

    return ".".join(pasv_data[:4]), port


def parse_quoted_path(message: str) -> str:
    """Return the text between the first and last double quote of a 257 reply."""
    start = message.find('"')
    end = message.rfind('"')
    if start == -1 or end <= start:
        raise FTPFormatError("unsupported PWD response format")
    return message[start + 1:end]


def _with_path(verb: str, path: str) -> str:
    return f"{verb} {path}" if path else verb


async def _dial_control(host: str, port: int, options: DialOptions) -> StreamPair:
    """Open the control stream using exactly one of the configured methods."""
    if options.connection is not None:
        return options.connection

    if options.dial_func is not None:
        opening = options.dial_func(host, port)
    elif options.tls_mode == TLSMode.IMPLICIT:
        opening = asyncio.open_connection(
            host, port, ssl=options.tls_config, server_hostname=host
        )
    else:
        opening = asyncio.open_connection(host, port)

    try:
        return await asyncio.wait_for(opening, timeout=options.timeout)
    except OSError as e:
        raise ErrorHandler.handle_transport_error(e, host, "dial") from e


async def dial(
    host: str,
    port: int = DEFAULT_PORT,
    options: Optional[DialOptions] = None,
    **option_fields: Any,
) -> "ServerConnection":
    """
    Connect to an FTP server and read its greeting.

    Args:
        host: Server host name or address
        port: Server port
        options: Dial options; keyword arguments override its fields

    Returns:
        ServerConnection ready for :meth:`ServerConnection.auth`

    Raises:
        FTPConnectionError: If the server cannot be reached
        FTPProtocolError: If the greeting is not 220 or AUTH TLS is refused
    """
    if options is None:
        options = DialOptions(**option_fields)
    elif option_fields:
        options = DialOptions(**{**dict(options), **option_fields})

    reader, writer = await _dial_control(host, port, options)

    # Use the resolved address for data channels in case host is a name that
    # resolves differently on a second lookup.
    peer = writer.get_extra_info("peername")
    resolved = peer[0] if peer else host

    control = ControlConnection(
        reader, writer, encoding=options.encoding, debug_output=options.debug_output, host=host
    )
    session = ServerConnection(control, resolved, host, options)

    try:
        await control.read_response(StatusCode.READY)
        if options.tls_mode == TLSMode.EXPLICIT:
            await session._auth_tls()
            await control.start_tls(options.tls_config, server_hostname=host)
    except FTPError:
        await session._quit_after_failure()
        raise

    logger.info("Connected to %s:%d (%s)", host, port, resolved)
    return session


async def connect(host: str, port: int = DEFAULT_PORT) -> "ServerConnection":
    """Dial with default options."""
    return await dial(host, port)


async def dial_timeout(host: str, port: int = DEFAULT_PORT, timeout: float = 30.0) -> "ServerConnection":
    """Dial with a connect timeout in seconds."""
    return await dial(host, port, timeout=timeout)


class ServerConnection:
    """
    One authenticated-or-not FTP session.

    A session runs one command at a time and owns at most one data channel;
    it must not be driven by several tasks concurrently. Capability flags are
    filled in by :meth:`after_auth` and only read afterwards.
    """

    def __init__(
        self,
        control: ControlConnection,
        host: str,
        server_name: str,
        options: DialOptions,
    ) -> None:
        self.control = control
        self.host = host
        self.server_name = server_name
        self.options = options

        self.features: Dict[str, str] = {}
        self.skip_epsv = False
        self.mlst_supported = False
        self.use_pret = False

    async def __aenter__(self) -> "ServerConnection":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.quit()

    @property
    def listing_format(self) -> ListingFormat:
        return ListingFormat.MLSD if self.mlst_supported else ListingFormat.LIST

    async def cmd(self, expected: Optional[int], line: str) -> Tuple[int, str]:
        """
        Send a command and read its reply.

        Args:
            expected: Required reply code, or None to accept any
            line: Command line without CRLF; arguments are sent verbatim

        Returns:
            (code, message)
        """
        return await self.control.cmd(expected, line)

    # Authentication and negotiation

    async def auth(self, user: str, password: str) -> int:
        """
        Send USER, then PASS if the server asks for it.

        Returns the last reply code without interpreting it, so callers can
        handle non-standard login flows.
        """
        code, _ = await self.cmd(None, f"USER {user}")
        if code == StatusCode.USER_OK:
            code, _ = await self.cmd(None, f"PASS {password}")
        return code

    async def after_auth(self) -> None:
        """Negotiate features, binary mode, UTF-8 and data channel protection."""
        await self._feat()
        self.mlst_supported = "MLST" in self.features and not self.options.disable_mlsd
        self.use_pret = "PRET" in self.features

        await self.cmd(StatusCode.COMMAND_OK, "TYPE I")

        if not self.options.disable_utf8:
            await self._set_utf8()

        if self.options.uses_tls:
            await self.cmd(StatusCode.COMMAND_OK, "PBSZ 0")
            await self.cmd(StatusCode.COMMAND_OK, "PROT P")

    async def login(self, user: str = "anonymous", password: str = "anonymous") -> None:
        """Authenticate and run :meth:`after_auth`."""
        code = await self.auth(user, password)
        if code != StatusCode.LOGGED_IN:
            raise FTPAuthenticationError(
                code, status_text(code) or "login rejected", self.server_name
            )
        logger.info("Logged in to %s as %s", self.server_name, user)
        await self.after_auth()

    async def _feat(self) -> None:
        code, message = await self.cmd(None, "FEAT")
        if code != StatusCode.SYSTEM:
            # No FEAT support simply means no extensions
            return

        for line in message.split("\n"):
            if not line.startswith(" "):
                continue
            keyword, _, params = line.strip().partition(" ")
            self.features[keyword.upper()] = params

    async def _set_utf8(self) -> None:
        if "UTF8" not in self.features:
            return

        code, message = await self.cmd(None, "OPTS UTF8 ON")
        if code in _UTF8_TOLERATED:
            return
        if code != StatusCode.COMMAND_OK:
            raise FTPError(message, host=self.server_name, ftp_code=code)

    async def _auth_tls(self) -> None:
        await self.cmd(StatusCode.AUTH_OK, "AUTH TLS")

    # Data channels

    async def _epsv(self) -> int:
        _, line = await self.cmd(StatusCode.EXTENDED_PASSIVE_MODE, "EPSV")
        return parse_epsv_response(line)

    async def _pasv(self) -> Tuple[str, int]:
        _, line = await self.cmd(StatusCode.PASSIVE_MODE, "PASV")
        return parse_pasv_response(line)

    async def _get_data_conn_port(self) -> Tuple[str, int]:
        if not self.options.disable_epsv and not self.skip_epsv:
            try:
                return self.host, await self._epsv()
            except FTPError as e:
                logger.warning(
                    "EPSV failed on %s (%s); using PASV for the rest of the session",
                    self.server_name,
                    e,
                )
                self.skip_epsv = True

        return await self._pasv()

    async def _open_data_conn(self) -> DataConnection:
        host, port = await self._get_data_conn_port()
        logger.debug("Opening data connection to %s:%d", host, port)

        tls_context = None
        if self.options.dial_func is not None:
            opening = self.options.dial_func(host, port)
        else:
            opening = asyncio.open_connection(host, port)
            tls_context = self.options.tls_config

        try:
            reader, writer = await asyncio.wait_for(opening, timeout=self.options.timeout)
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, host, "data dial") from e

        return DataConnection(
            reader, writer, tls_context=tls_context, server_hostname=self.server_name, host=host
        )

    async def _cmd_data_conn_from(self, offset: int, command: str) -> DataConnection:
        """
        Open a data channel and start a transfer command on it.

        Sends PRET first when the server wants it and REST when ``offset`` is
        non-zero. The data channel is closed again if the transfer is refused.
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")

        if self.use_pret:
            await self.cmd(None, f"PRET {command}")

        conn = await self._open_data_conn()

        try:
            if offset:
                await self.cmd(StatusCode.REQUEST_FILE_PENDING, f"REST {offset}")
            code, message = await self.cmd(None, command)
        except FTPError:
            conn.abort()
            raise

        if code not in (StatusCode.ALREADY_OPEN, StatusCode.ABOUT_TO_SEND):
            conn.abort()
            raise ErrorHandler.protocol_error(code, message, self.server_name)

        return conn

    async def _upload(self, conn: DataConnection, source: Any) -> None:
        # The 226 reply is read even when the copy failed, otherwise a refused
        # upload (quota, permissions) would leave the reply unread and the
        # next command would see it.
        error: Optional[BaseException] = None
        written = 0
        try:
            written = await copy_source(conn, source)
        except Exception as e:
            error = e

        # An empty upload never triggers the lazy TLS handshake; some servers
        # reject the transfer unless it happened.
        if written == 0 and error is None and conn.is_tls:
            try:
                await conn.handshake()
            except FTPError as e:
                error = e

        try:
            await conn.close()
        except FTPError as e:
            if error is None:
                error = e

        try:
            await self.control.read_response(StatusCode.CLOSING_DATA_CONNECTION)
        except FTPError as e:
            if error is not None:
                logger.warning("Discarding upload error in favour of reply: %s", error)
            raise e from error

        if error is not None:
            raise error

    async def _read_lines(self, conn: DataConnection) -> List[str]:
        stream = DataStream(conn, self)
        try:
            lines = [line async for line in stream.iter_lines()]
        except FTPError:
            await self._close_after_failure(stream)
            raise
        await stream.close()
        return lines

    async def _close_after_failure(self, stream: DataStream) -> None:
        try:
            await stream.close()
        except FTPError as e:
            logger.warning("Discarding close error after failed read: %s", e)

    async def _quit_after_failure(self) -> None:
        try:
            await self.quit()
        except FTPError as e:
            logger.debug("Ignoring QUIT failure on %s: %s", self.server_name, e)

    # Listings

    async def name_list(self, path: str = "") -> List[str]:
        """Issue NLST and return the raw names."""
        conn = await self._cmd_data_conn_from(0, _with_path("NLST", path))
        return await self._read_lines(conn)

    async def list(self, path: str = "") -> List[Entry]:
        """
        List a directory with MLSD when the server supports it, else LIST.

        Lines that match no known listing format are skipped.
        """
        listing_format = self.listing_format
        conn = await self._cmd_data_conn_from(0, _with_path(listing_format.value, path))
        lines = await self._read_lines(conn)

        now = datetime.now(self.options.location)
        entries = []
        for line in lines:
            try:
                entries.append(parse_line(listing_format, line, now, self.options.location))
            except FTPListingParseError as e:
                logger.debug("Skipping listing line: %s", e)
        return entries

    # Navigation

    async def change_dir(self, path: str) -> None:
        await self.cmd(StatusCode.REQUESTED_FILE_ACTION_OK, f"CWD {path}")

    async def change_dir_to_parent(self) -> None:
        await self.cmd(StatusCode.REQUESTED_FILE_ACTION_OK, "CDUP")

    async def current_dir(self) -> str:
        _, message = await self.cmd(StatusCode.PATH_CREATED, "PWD")
        return parse_quoted_path(message)

    def walk(self, root: str) -> Walker:
        """Return a depth-first walker over the tree below ``root``."""
        return Walker(self, root)

    # Files and directories

    async def file_size(self, path: str) -> int:
        _, message = await self.cmd(StatusCode.FILE, f"SIZE {path}")
        try:
            return int(message.strip())
        except ValueError as e:
            raise FTPFormatError(f"invalid SIZE response: {message!r}") from e

    async def retr(self, path: str) -> DataStream:
        """Fetch a file. The returned stream must be closed."""
        return await self.retr_from(path, 0)

    async def retr_from(self, path: str, offset: int) -> DataStream:
        """Fetch a file, skipping its first ``offset`` bytes."""
        conn = await self._cmd_data_conn_from(offset, f"RETR {path}")
        return DataStream(conn, self)

    async def stor(self, path: str, source: Any) -> None:
        """Create or replace a file with the content of ``source``."""
        await self.stor_from(path, source, 0)

    async def stor_from(self, path: str, source: Any, offset: int) -> None:
        """Write ``source`` into a remote file starting at ``offset``."""
        conn = await self._cmd_data_conn_from(offset, f"STOR {path}")
        await self._upload(conn, source)

    async def append(self, path: str, source: Any) -> None:
        """Append ``source`` to a remote file, creating it if needed."""
        conn = await self._cmd_data_conn_from(0, f"APPE {path}")
        await self._upload(conn, source)

    async def rename(self, from_path: str, to_path: str) -> None:
        await self.cmd(StatusCode.REQUEST_FILE_PENDING, f"RNFR {from_path}")
        await self.cmd(StatusCode.REQUESTED_FILE_ACTION_OK, f"RNTO {to_path}")

    async def delete(self, path: str) -> None:
        await self.cmd(StatusCode.REQUESTED_FILE_ACTION_OK, f"DELE {path}")

    async def make_dir(self, path: str) -> str:
        """Create a directory and return the path the server reports."""
        _, message = await self.cmd(StatusCode.PATH_CREATED, f"MKD {path}")
        try:
            return parse_quoted_path(message)
        except FTPFormatError:
            return path

    async def remove_dir(self, path: str) -> None:
        await self.cmd(StatusCode.REQUESTED_FILE_ACTION_OK, f"RMD {path}")

    async def remove_dir_recur(self, path: str) -> None:
        """
        Delete a directory and everything below it.

        Files are deleted, subdirectories handled recursively, then the
        emptied directory is removed. The first failure aborts the whole
        operation and leaves whatever was not yet deleted in place.
        """
        await self.change_dir(path)
        current = await self.current_dir()

        for entry in await self.list(current):
            if entry.name in (".", ".."):
                continue
            if entry.type == EntryType.FOLDER:
                await self.remove_dir_recur(child_path(current, entry.name))
            else:
                await self.delete(entry.name)

        await self.change_dir_to_parent()
        await self.remove_dir(current)

    # Session

    async def noop(self) -> None:
        await self.cmd(StatusCode.COMMAND_OK, "NOOP")

    async def logout(self) -> None:
        """Issue REIN to log the current user out."""
        await self.cmd(StatusCode.READY, "REIN")

    async def quit(self) -> None:
        """Send QUIT and close the control channel."""
        quit_error: Optional[FTPError] = None
        try:
            await self.control.send_command("QUIT")
        except FTPError as e:
            quit_error = e

        try:
            await self.control.close()
        except FTPError as e:
            if quit_error is not None:
                raise FTPConnectionError(
                    f"error while quitting: {quit_error}: {e}", host=self.server_name
                ) from e
            raise

        if quit_error is not None:
            raise quit_error
        logger.info("Disconnected from %s", self.server_name)
