"""
Shared test fixtures for the ftp_session test suite.

``FakeFTPServer`` is a small scripted FTP server running on the test's event
loop. It keeps an in-memory file tree, records every command it receives and
lets a test replace the reply to any verb.
"""

import asyncio
import posixpath
from typing import Dict, List, Optional, Set, Tuple

import pytest

from ftp_session import dial

DEFAULT_FEATURES = ["UTF8", "MLST type*;size*;modify*;", "EPSV", "PASV", "SIZE", "REST STREAM"]

TRANSFER_VERBS = {"RETR", "STOR", "APPE", "LIST", "MLSD", "NLST"}


class FakeFTPServer:
    """In-memory FTP server speaking just enough of RFC 959 for the tests."""

    def __init__(self) -> None:
        self.port = 0
        self.greeting = "220 Fake FTP server ready"
        self.users: Dict[str, str] = {"user": "secret"}
        self.features: Optional[List[str]] = list(DEFAULT_FEATURES)
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = {"/"}
        self.commands: List[str] = []
        # verb -> raw reply lines sent instead of the normal handling
        self.replies: Dict[str, List[str]] = {}
        # verb -> final reply of a transfer instead of "226 Transfer complete"
        self.transfer_replies: Dict[str, str] = {}
        # Name the MLSD cdir/pdir entries by full path instead of "." and ".."
        self.mlsd_full_paths = False
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: List[asyncio.StreamWriter] = []
        self._listeners: List[asyncio.AbstractServer] = []

    # Tree helpers

    def add_file(self, path: str, content: bytes = b"") -> None:
        self.files[path] = content
        parent = posixpath.dirname(path)
        while parent not in self.dirs:
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def add_dir(self, path: str) -> None:
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def children(self, path: str) -> List[Tuple[str, bool]]:
        """(name, is_dir) pairs directly below ``path``, sorted by name."""
        found = {}
        for item in self.dirs:
            if item != path and posixpath.dirname(item) == path:
                found[posixpath.basename(item)] = True
        for item in self.files:
            if posixpath.dirname(item) == path:
                found[posixpath.basename(item)] = False
        return sorted(found.items())

    async def received(self, command: str, timeout: float = 2.0) -> None:
        """Wait until the server has seen ``command``, for replies nobody reads."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while command not in self.commands:
            assert loop.time() < deadline, f"{command!r} never received"
            await asyncio.sleep(0.01)

    def verbs(self) -> List[str]:
        return [command.split(" ", 1)[0] for command in self.commands]

    # Lifecycle

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for listener in self._listeners:
            listener.close()
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    # Protocol

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        state = _Connection(self, reader, writer)
        try:
            await state.run()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()


class _Connection:
    def __init__(self, server: FakeFTPServer, reader, writer) -> None:
        self.server = server
        self.reader = reader
        self.writer = writer
        self.user = ""
        self.cwd = "/"
        self.rest = 0
        self.rename_from: Optional[str] = None
        self.data: Optional["asyncio.Future[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]"] = None

    async def reply(self, *lines: str) -> None:
        for line in lines:
            self.writer.write(line.encode("utf-8") + b"\r\n")
        await self.writer.drain()

    def resolve(self, arg: str) -> str:
        if not arg:
            return self.cwd
        return posixpath.normpath(posixpath.join(self.cwd, arg))

    async def run(self) -> None:
        await self.reply(self.server.greeting)
        if not self.server.greeting.startswith("220"):
            return
        while True:
            raw = await self.reader.readline()
            if not raw:
                return
            line = raw.decode("utf-8").rstrip("\r\n")
            self.server.commands.append(line)
            verb, _, arg = line.partition(" ")
            verb = verb.upper()

            if verb in self.server.replies:
                await self.reply(*self.server.replies[verb])
                continue
            if verb == "QUIT":
                await self.reply("221 Goodbye")
                return

            handler = getattr(self, f"do_{verb.lower()}", None)
            if handler is None:
                await self.reply("502 Command not implemented")
            else:
                await handler(arg)

    # Session commands

    async def do_user(self, arg: str) -> None:
        self.user = arg
        await self.reply("331 Password required")

    async def do_pass(self, arg: str) -> None:
        if self.user == "anonymous" or self.server.users.get(self.user) == arg:
            await self.reply("230 Logged in")
        else:
            await self.reply("530 Login incorrect")

    async def do_feat(self, arg: str) -> None:
        if self.server.features is None:
            await self.reply("500 FEAT not understood")
            return
        await self.reply(
            "211-Features:", *(f" {feature}" for feature in self.server.features), "211 End"
        )

    async def do_type(self, arg: str) -> None:
        await self.reply(f"200 Type set to {arg}")

    async def do_opts(self, arg: str) -> None:
        await self.reply("200 OK")

    async def do_pbsz(self, arg: str) -> None:
        await self.reply("200 PBSZ=0")

    async def do_prot(self, arg: str) -> None:
        await self.reply("200 Protection set")

    async def do_pret(self, arg: str) -> None:
        await self.reply("200 Ready")

    async def do_noop(self, arg: str) -> None:
        await self.reply("200 NOOP ok")

    async def do_rein(self, arg: str) -> None:
        await self.reply("220 Ready for new user")

    async def do_auth(self, arg: str) -> None:
        await self.reply("534 TLS not available")

    # Navigation and file system commands

    async def do_pwd(self, arg: str) -> None:
        await self.reply(f'257 "{self.cwd}" is the current directory')

    async def do_cwd(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.dirs:
            await self.reply("550 No such directory")
            return
        self.cwd = path
        await self.reply("250 Directory changed")

    async def do_cdup(self, arg: str) -> None:
        self.cwd = posixpath.dirname(self.cwd) or "/"
        await self.reply("250 Directory changed")

    async def do_mkd(self, arg: str) -> None:
        path = self.resolve(arg)
        self.server.add_dir(path)
        await self.reply(f'257 "{path}" created')

    async def do_rmd(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.dirs or self.server.children(path):
            await self.reply("550 Cannot remove directory")
            return
        self.server.dirs.discard(path)
        await self.reply("250 Directory removed")

    async def do_dele(self, arg: str) -> None:
        path = self.resolve(arg)
        if self.server.files.pop(path, None) is None:
            await self.reply("550 No such file")
            return
        await self.reply("250 File deleted")

    async def do_rnfr(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.files:
            await self.reply("550 No such file")
            return
        self.rename_from = path
        await self.reply("350 Ready for destination name")

    async def do_rnto(self, arg: str) -> None:
        if self.rename_from is None:
            await self.reply("503 Bad sequence of commands")
            return
        self.server.files[self.resolve(arg)] = self.server.files.pop(self.rename_from)
        self.rename_from = None
        await self.reply("250 Rename successful")

    async def do_size(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.files:
            await self.reply("550 No such file")
            return
        await self.reply(f"213 {len(self.server.files[path])}")

    async def do_rest(self, arg: str) -> None:
        self.rest = int(arg)
        await self.reply(f"350 Restarting at {self.rest}")

    # Passive mode

    async def _listen(self) -> int:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def accepted(reader, writer):
            self.server._writers.append(writer)
            if not future.done():
                future.set_result((reader, writer))

        listener = await asyncio.start_server(accepted, "127.0.0.1", 0)
        self.server._listeners.append(listener)
        self.data = future
        return listener.sockets[0].getsockname()[1]

    async def do_epsv(self, arg: str) -> None:
        port = await self._listen()
        await self.reply(f"229 Entering Extended Passive Mode (|||{port}|)")

    async def do_pasv(self, arg: str) -> None:
        port = await self._listen()
        await self.reply(f"227 Entering Passive Mode (127,0,0,1,{port // 256},{port % 256})")

    async def _data_channel(self) -> Optional[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]:
        if self.data is None:
            await self.reply("425 Use PASV or EPSV first")
            return None
        future, self.data = self.data, None
        return await asyncio.wait_for(future, timeout=5)

    async def _finish(self, verb: str, data_writer: asyncio.StreamWriter) -> None:
        data_writer.close()
        await data_writer.wait_closed()
        self.rest = 0
        await self.reply(self.server.transfer_replies.get(verb, "226 Transfer complete"))

    async def _send_lines(self, verb: str, lines: List[str]) -> None:
        channel = await self._data_channel()
        if channel is None:
            return
        await self.reply("150 Here comes the listing")
        _, data_writer = channel
        data_writer.write("".join(line + "\r\n" for line in lines).encode("utf-8"))
        await data_writer.drain()
        await self._finish(verb, data_writer)

    async def do_list(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.dirs:
            await self.reply("550 No such directory")
            return
        lines = [f"total {len(self.server.children(path))}"]
        for name, is_dir in self.server.children(path):
            if is_dir:
                lines.append(f"drwxr-xr-x   2 owner group     4096 Jan 02  2020 {name}")
            else:
                size = len(self.server.files[posixpath.join(path, name)])
                lines.append(f"-rw-r--r--   1 owner group {size:>8} Jan 02  2020 {name}")
        await self._send_lines("LIST", lines)

    async def do_mlsd(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.dirs:
            await self.reply("550 No such directory")
            return
        if self.server.mlsd_full_paths:
            here, parent = path, posixpath.dirname(path)
        else:
            here, parent = ".", ".."
        lines = [f"type=cdir;modify=20200102030405; {here}", f"type=pdir;modify=20200102030405; {parent}"]
        for name, is_dir in self.server.children(path):
            if is_dir:
                lines.append(f"type=dir;modify=20200102030405; {name}")
            else:
                size = len(self.server.files[posixpath.join(path, name)])
                lines.append(f"type=file;size={size};modify=20200102030405; {name}")
        await self._send_lines("MLSD", lines)

    async def do_nlst(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.dirs:
            await self.reply("550 No such directory")
            return
        await self._send_lines("NLST", [name for name, _ in self.server.children(path)])

    async def do_retr(self, arg: str) -> None:
        path = self.resolve(arg)
        if path not in self.server.files:
            await self.reply("550 No such file")
            return
        channel = await self._data_channel()
        if channel is None:
            return
        await self.reply("150 Opening BINARY mode data connection")
        _, data_writer = channel
        data_writer.write(self.server.files[path][self.rest:])
        await data_writer.drain()
        await self._finish("RETR", data_writer)

    async def _receive(self, verb: str, arg: str) -> None:
        path = self.resolve(arg)
        channel = await self._data_channel()
        if channel is None:
            return
        await self.reply("150 Ok to send data")
        data_reader, data_writer = channel
        content = await data_reader.read()
        existing = self.server.files.get(path, b"")
        if verb == "APPE":
            content = existing + content
        elif self.rest:
            content = existing[:self.rest] + content
        self.server.add_file(path, content)
        await self._finish(verb, data_writer)

    async def do_stor(self, arg: str) -> None:
        await self._receive("STOR", arg)

    async def do_appe(self, arg: str) -> None:
        await self._receive("APPE", arg)


@pytest.fixture
async def ftp_server():
    """A running fake FTP server on a random local port."""
    server = FakeFTPServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
async def session(ftp_server):
    """A logged in session against ``ftp_server``."""
    conn = await dial("127.0.0.1", ftp_server.port, timeout=5)
    await conn.login("user", "secret")
    yield conn
    await conn.quit()
