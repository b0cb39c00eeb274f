"""
Depth-first traversal of a remote directory tree.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncIterator, Deque, List, Optional, Tuple

from ..exceptions import FTPError
from .models import Entry, EntryType

if TYPE_CHECKING:
    from .connection import ServerConnection


def child_path(parent: str, name: str) -> str:
    """Path of ``name`` inside ``parent``; a name with slashes never replaces the parent."""
    return parent.rstrip("/") + "/" + name


@dataclass
class _Frame:
    path: str
    entries: Deque[Entry] = field(default_factory=deque)


class Walker:
    """
    Pre-order walk over the tree below a root directory.

    Call :meth:`next` until it returns False, reading :attr:`path` and
    :meth:`stat` after each step. Listing errors end the walk and are kept in
    :attr:`err` instead of being raised. Call :meth:`skip_dir` after a folder
    is yielded to avoid descending into it.

    Also usable as ``async for path, entry in walker``, which raises the
    stored error once the walk stops.
    """

    def __init__(self, session: "ServerConnection", root: str) -> None:
        if not root.endswith("/"):
            root += "/"
        self.session = session
        self.root = root
        self._frames: List[_Frame] = []
        self._current: Optional[Tuple[str, Entry]] = None
        self._error: Optional[FTPError] = None
        self._descend = True
        self._started = False
        self._finished = False

    @property
    def err(self) -> Optional[FTPError]:
        return self._error

    @property
    def path(self) -> str:
        """Absolute path of the current entry (the root before the first step)."""
        return self._current[0] if self._current else self.root

    def stat(self) -> Optional[Entry]:
        """The current entry, or None before the first step and after the end."""
        return self._current[1] if self._current else None

    def skip_dir(self) -> None:
        """Do not descend into the folder returned by the last step."""
        self._descend = False

    async def _push(self, path: str) -> bool:
        try:
            entries = await self.session.list(path)
        except FTPError as e:
            self._error = e
            self._finished = True
            self._current = None
            return False
        frame = _Frame(path)
        frame.entries.extend(entry for entry in entries if entry.name not in (".", ".."))
        self._frames.append(frame)
        return True

    async def next(self) -> bool:
        """Advance to the next entry; False once the walk is over."""
        if self._finished:
            return False

        if not self._started:
            self._started = True
            if not await self._push(self.root):
                return False
        elif (
            self._descend
            and self._current is not None
            and self._current[1].type == EntryType.FOLDER
        ):
            if not await self._push(self._current[0]):
                return False

        self._descend = True

        while self._frames and not self._frames[-1].entries:
            self._frames.pop()

        if not self._frames:
            self._current = None
            self._finished = True
            return False

        frame = self._frames[-1]
        entry = frame.entries.popleft()
        self._current = (child_path(frame.path, entry.name), entry)
        return True

    def __aiter__(self) -> AsyncIterator[Tuple[str, Entry]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Tuple[str, Entry]]:
        while await self.next():
            assert self._current is not None
            yield self._current
        if self._error is not None:
            raise self._error
