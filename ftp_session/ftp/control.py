"""
Control channel framing.

The control channel carries CRLF-terminated commands and numbered replies.
Commands and replies strictly alternate: a reply must be read for every
command before the next one is sent.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Optional, Tuple

from ..exceptions import ErrorHandler, FTPConnectionError, FTPFormatError

logger = logging.getLogger(__name__)

CRLF = b"\r\n"


def parse_code_line(line: str) -> Tuple[int, bool, str]:
    """
    Split a reply line into (code, continued, text).

    ``continued`` is true for the ``CODE-text`` form that opens a multi-line
    reply.
    """
    if len(line) < 3 or not line[:3].isdigit() or (len(line) > 3 and line[3] not in " -"):
        raise FTPFormatError(f"short or malformed reply line: {line!r}")
    continued = len(line) > 3 and line[3] == "-"
    return int(line[:3]), continued, line[4:]


class ControlConnection:
    """
    Line-oriented request/response transport over a stream pair.

    Optionally copies every byte sent and received to ``debug_output``.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        encoding: str = "utf-8",
        debug_output: Optional[Any] = None,
        host: Optional[str] = None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.encoding = encoding
        self.debug_output = debug_output
        self.host = host

    def _tee(self, data: bytes) -> None:
        if self.debug_output is not None:
            self.debug_output.write(data)

    async def send_command(self, line: str) -> None:
        """Write one command line terminated by CRLF."""
        data = line.encode(self.encoding) + CRLF
        logger.debug("-> %s", line)
        self._tee(data)
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "send") from e

    async def read_line(self) -> str:
        """Read one reply line without its line terminator."""
        try:
            data = await self.reader.readline()
        except (OSError, ValueError) as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "receive") from e
        if not data or not data.endswith(b"\n"):
            raise FTPConnectionError(
                "control connection closed by server", host=self.host
            )
        self._tee(data)
        return data.decode(self.encoding, errors="replace").rstrip("\r\n")

    async def read_response(self, expected: Optional[int] = None) -> Tuple[int, str]:
        """
        Read a complete, possibly multi-line, reply.

        Args:
            expected: Required reply code, or None to accept any code

        Returns:
            (code, message) where multi-line messages are joined with newlines

        Raises:
            FTPProtocolError: If ``expected`` is given and does not match
        """
        code, continued, message = parse_code_line(await self.read_line())
        while continued:
            line = await self.read_line()
            try:
                line_code, continued, more = parse_code_line(line)
            except FTPFormatError:
                line_code = None
            if line_code != code:
                message += "\n" + line
                continued = True
                continue
            message += "\n" + more

        logger.debug("<- %d %s", code, message)
        if expected is not None and code != expected:
            raise ErrorHandler.protocol_error(code, message, self.host)
        return code, message

    async def cmd(self, expected: Optional[int], line: str) -> Tuple[int, str]:
        """Send a command and read its reply."""
        await self.send_command(line)
        return await self.read_response(expected)

    async def start_tls(self, context: ssl.SSLContext, server_hostname: Optional[str]) -> None:
        """Upgrade the underlying transport to TLS in place."""
        try:
            await self.writer.start_tls(context, server_hostname=server_hostname)
        except (OSError, ssl.SSLError) as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "tls") from e

    async def close(self) -> None:
        """Close the transport."""
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            raise ErrorHandler.handle_transport_error(e, self.host, "close") from e
