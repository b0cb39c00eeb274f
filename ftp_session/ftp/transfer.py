"""
Data channel transports for the FTP session engine.

This module provides the per-transfer data connection, the readable stream
handed to callers for RETR and listings, and the copy loop used by uploads.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import ssl
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Optional, TypeVar

from ..exceptions import ErrorHandler, FTPError, FTPTimeoutError
from .models import StatusCode

if TYPE_CHECKING:
    from .connection import ServerConnection

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 64 * 1024

T = TypeVar("T")


class DataConnection:
    """
    One data channel, opened for exactly one transfer.

    When a TLS context is given the upgrade is deferred until the first read,
    the first write or an explicit call to :meth:`handshake`.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        tls_context: Optional[ssl.SSLContext] = None,
        server_hostname: Optional[str] = None,
        host: Optional[str] = None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.tls_context = tls_context
        self.server_hostname = server_hostname
        self.host = host
        self._handshake_done = False
        self._handshake_error: Optional[FTPError] = None

    @property
    def is_tls(self) -> bool:
        """Whether this channel is (or will be) protected with TLS."""
        return self.tls_context is not None

    async def handshake(self) -> None:
        """Complete the TLS handshake now if it has not happened yet."""
        if self.tls_context is None or self._handshake_done:
            return
        if self._handshake_error is not None:
            raise self._handshake_error
        try:
            await self.writer.start_tls(
                self.tls_context, server_hostname=self.server_hostname
            )
        except OSError as e:
            self._handshake_error = ErrorHandler.handle_transport_error(e, self.host, "tls")
            raise self._handshake_error from e
        self._handshake_done = True

    async def read(self, n: int = -1) -> bytes:
        await self.handshake()
        try:
            return await self.reader.read(n)
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "read") from e

    async def readline(self) -> bytes:
        await self.handshake()
        try:
            return await self.reader.readline()
        except (OSError, ValueError) as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "read") from e

    async def write(self, data: bytes) -> None:
        await self.handshake()
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "write") from e

    async def close(self) -> None:
        """Close the channel and wait until the transport is gone."""
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "close") from e

    def abort(self) -> None:
        """Close the channel without waiting, used when a transfer never started."""
        self.writer.close()


class DataStream:
    """
    A readable data transfer returned by RETR, LIST, NLST and MLSD.

    Closing the stream closes the data channel and then reads the server's
    226 acknowledgment on the control channel, exactly once. Use it as an
    async context manager or call :meth:`close` explicitly; iterating yields
    blocks of bytes until the server ends the transfer.
    """

    def __init__(
        self,
        conn: DataConnection,
        session: "ServerConnection",
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        self.conn = conn
        self.session = session
        self.block_size = block_size
        self._closed = False
        self._deadline: Optional[float] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def set_deadline(self, deadline: Optional[float]) -> None:
        """
        Bound every subsequent read by an absolute event loop time.

        Args:
            deadline: Value comparable to ``loop.time()``, or None to clear
        """
        self._deadline = deadline

    async def _bounded(self, operation: Awaitable[T]) -> T:
        if self._deadline is None:
            return await operation
        remaining = self._deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(operation, timeout=max(remaining, 0))
        except asyncio.TimeoutError as e:
            raise FTPTimeoutError(
                "data transfer deadline exceeded",
                host=self.conn.host,
                operation="read",
            ) from e

    def _check_open(self) -> None:
        if self._closed:
            raise FTPError("read on closed data stream", host=self.conn.host)

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes; an empty result means the transfer ended."""
        self._check_open()
        return await self._bounded(self.conn.read(n))

    async def readline(self) -> bytes:
        self._check_open()
        return await self._bounded(self.conn.readline())

    async def iter_lines(self) -> AsyncIterator[str]:
        """Yield decoded lines with their CR/LF terminators removed."""
        encoding = self.session.options.encoding
        while True:
            line = await self.readline()
            if not line:
                return
            yield line.decode(encoding, errors="replace").rstrip("\r\n")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_blocks()

    async def _iter_blocks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read(self.block_size)
            if not chunk:
                return
            yield chunk

    async def close(self) -> None:
        """
        Close the data channel and consume the transfer's 226 reply.

        A second call does nothing. If both steps fail, the control channel
        error is raised.
        """
        if self._closed:
            return
        self._closed = True

        close_error: Optional[FTPError] = None
        try:
            await self.conn.close()
        except FTPError as e:
            close_error = e

        try:
            await self.session.control.read_response(
                StatusCode.CLOSING_DATA_CONNECTION
            )
        except FTPError:
            if close_error is not None:
                logger.warning("Discarding data channel close error: %s", close_error)
            raise

        if close_error is not None:
            raise close_error

    async def __aenter__(self) -> "DataStream":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()


async def copy_source(
    conn: DataConnection, source: Any, block_size: int = DEFAULT_BLOCK_SIZE
) -> int:
    """
    Copy upload content into a data channel.

    ``source`` may be bytes, an object with a sync or async ``read(size)``
    method, an async iterable of bytes or an iterable of bytes.

    Returns:
        Number of bytes written
    """
    written = 0

    if isinstance(source, (bytes, bytearray, memoryview)):
        if source:
            await conn.write(bytes(source))
            written = len(source)
        return written

    read = getattr(source, "read", None)
    if read is not None:
        while True:
            chunk = read(block_size)
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                return written
            if isinstance(chunk, str):
                raise TypeError("upload source must produce bytes, not str")
            await conn.write(chunk)
            written += len(chunk)

    if hasattr(source, "__aiter__"):
        async for chunk in source:
            if chunk:
                await conn.write(chunk)
                written += len(chunk)
        return written

    for chunk in source:
        if chunk:
            await conn.write(chunk)
            written += len(chunk)
    return written
