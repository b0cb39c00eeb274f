"""
Tests for listings, the directory walker and recursive removal.
"""

import pytest

from ftp_session import EntryType, FTPFileNotFoundError, FTPProtocolError, dial
from ftp_session.ftp.walker import child_path


@pytest.fixture
def tree(ftp_server):
    ftp_server.add_file("/root/a.txt", b"aaa")
    ftp_server.add_file("/root/sub/b.txt", b"bb")
    ftp_server.add_file("/root/sub/deeper/c.txt", b"c")
    ftp_server.add_file("/root/z.txt", b"")
    return ftp_server


class TestList:
    """Test LIST, MLSD and NLST."""

    @pytest.mark.asyncio
    async def test_mlsd_listing(self, session, tree):
        entries = await session.list("/root")
        assert "MLSD /root" in tree.commands
        by_name = {entry.name: entry for entry in entries}
        assert by_name["a.txt"].type == EntryType.FILE
        assert by_name["a.txt"].size == 3
        assert by_name["sub"].type == EntryType.FOLDER
        assert by_name["."].type == EntryType.FOLDER

    @pytest.mark.asyncio
    async def test_list_fallback_without_mlst(self, tree):
        tree.features = ["UTF8"]
        async with await dial("127.0.0.1", tree.port) as conn:
            await conn.login("user", "secret")
            entries = await conn.list("/root")
        assert "LIST /root" in tree.commands
        # The leading "total 3" line matches no format and is dropped
        assert [(entry.name, entry.type, entry.size) for entry in entries] == [
            ("a.txt", EntryType.FILE, 3),
            ("sub", EntryType.FOLDER, 0),
            ("z.txt", EntryType.FILE, 0),
        ]

    @pytest.mark.asyncio
    async def test_list_without_path(self, session, tree):
        await session.change_dir("/root")
        await session.list()
        assert tree.commands[-1] == "MLSD"

    @pytest.mark.asyncio
    async def test_name_list(self, session, tree):
        assert await session.name_list("/root") == ["a.txt", "sub", "z.txt"]
        assert "NLST /root" in tree.commands

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, session, tree):
        with pytest.raises(FTPFileNotFoundError):
            await session.list("/nope")


class TestWalker:
    """Test depth-first traversal."""

    @pytest.mark.asyncio
    async def test_pre_order_walk(self, session, tree):
        walker = session.walk("/root")
        paths = []
        while await walker.next():
            paths.append((walker.path, walker.stat().type))

        assert paths == [
            ("/root/a.txt", EntryType.FILE),
            ("/root/sub", EntryType.FOLDER),
            ("/root/sub/b.txt", EntryType.FILE),
            ("/root/sub/deeper", EntryType.FOLDER),
            ("/root/sub/deeper/c.txt", EntryType.FILE),
            ("/root/z.txt", EntryType.FILE),
        ]
        assert walker.err is None
        assert walker.stat() is None
        assert await walker.next() is False

    @pytest.mark.asyncio
    async def test_skip_dir(self, session, tree):
        walker = session.walk("/root/")
        paths = []
        while await walker.next():
            paths.append(walker.path)
            if walker.path == "/root/sub":
                walker.skip_dir()

        assert paths == ["/root/a.txt", "/root/sub", "/root/z.txt"]
        assert "MLSD /root/sub" not in tree.commands

    @pytest.mark.asyncio
    async def test_async_iteration(self, session, tree):
        names = [entry.name async for _, entry in session.walk("/root/sub")]
        assert names == ["b.txt", "deeper", "c.txt"]

    @pytest.mark.asyncio
    async def test_full_path_cdir_entries_are_skipped(self, session, tree):
        tree.mlsd_full_paths = True
        paths = [path async for path, _ in session.walk("/root")]
        assert paths == [
            "/root/a.txt",
            "/root/sub",
            "/root/sub/b.txt",
            "/root/sub/deeper",
            "/root/sub/deeper/c.txt",
            "/root/z.txt",
        ]

    @pytest.mark.asyncio
    async def test_listing_error_stops_walk(self, session, tree):
        walker = session.walk("/missing")
        assert walker.path == "/missing/"
        assert await walker.next() is False
        assert isinstance(walker.err, FTPFileNotFoundError)
        assert await walker.next() is False

    @pytest.mark.asyncio
    async def test_async_iteration_raises_stored_error(self, session, tree):
        with pytest.raises(FTPProtocolError):
            async for _ in session.walk("/missing"):
                pass


class TestRemoveDirRecur:
    """Test recursive directory removal."""

    @pytest.mark.asyncio
    async def test_removes_tree_depth_first(self, session, ftp_server):
        ftp_server.add_file("/data/x.txt", b"x")
        ftp_server.add_file("/data/inner/y.txt", b"y")

        await session.remove_dir_recur("/data")

        assert ftp_server.files == {}
        assert ftp_server.dirs == {"/"}
        removals = [c for c in ftp_server.commands if c.split(" ")[0] in ("DELE", "RMD")]
        assert removals == ["DELE y.txt", "RMD /data/inner", "DELE x.txt", "RMD /data"]

    @pytest.mark.asyncio
    async def test_full_path_cdir_entries_are_skipped(self, session, ftp_server):
        ftp_server.mlsd_full_paths = True
        ftp_server.add_file("/data/x.txt", b"x")
        ftp_server.add_file("/data/inner/y.txt", b"y")

        await session.remove_dir_recur("/data")

        assert ftp_server.files == {}
        assert ftp_server.dirs == {"/"}
        removals = [c for c in ftp_server.commands if c.split(" ")[0] in ("DELE", "RMD")]
        assert removals == ["DELE y.txt", "RMD /data/inner", "DELE x.txt", "RMD /data"]

    @pytest.mark.asyncio
    async def test_failure_aborts(self, session, ftp_server):
        ftp_server.add_file("/data/x.txt", b"x")
        ftp_server.replies["DELE"] = ["550 Permission denied"]

        with pytest.raises(FTPFileNotFoundError):
            await session.remove_dir_recur("/data")
        assert "/data" in ftp_server.dirs
        assert "RMD /data" not in ftp_server.commands


class TestChildPath:
    def test_joins_under_parent(self):
        assert child_path("/root/", "a.txt") == "/root/a.txt"
        assert child_path("/", "a.txt") == "/a.txt"

    def test_absolute_name_does_not_replace_parent(self):
        assert child_path("/root", "/etc") == "/root//etc"
