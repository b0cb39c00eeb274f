"""
Local file helpers built on the session transfer operations.

This module provides downloading into and uploading from local files with
optional resume, using aiofiles so the event loop is never blocked on disk.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

import aiofiles

from .connection import ServerConnection
from .transfer import DEFAULT_BLOCK_SIZE

logger = logging.getLogger(__name__)


async def download_file(
    session: ServerConnection,
    remote_path: str,
    local_path: Union[str, Path],
    resume: bool = False,
    chunk_size: int = DEFAULT_BLOCK_SIZE,
) -> int:
    """
    Download a remote file to a local path.

    Args:
        session: Logged in session
        remote_path: File to fetch
        local_path: Destination file
        resume: Continue a partial local file using REST
        chunk_size: Read size for the data channel

    Returns:
        Number of bytes received in this call
    """
    local_path = Path(local_path)
    local_path.parent.mkdir(parents=True, exist_ok=True)

    offset = 0
    if resume and local_path.exists():
        offset = local_path.stat().st_size

    received = 0
    stream = await session.retr_from(remote_path, offset)
    stream.block_size = chunk_size
    async with stream:
        async with aiofiles.open(local_path, "ab" if offset else "wb") as f:
            async for chunk in stream:
                await f.write(chunk)
                received += len(chunk)

    logger.debug(
        "Downloaded %s -> %s (%d bytes from offset %d)", remote_path, local_path, received, offset
    )
    return received


async def upload_file(
    session: ServerConnection,
    local_path: Union[str, Path],
    remote_path: str,
    offset: int = 0,
) -> int:
    """
    Upload a local file, optionally resuming at ``offset``.

    Returns:
        Number of bytes sent
    """
    local_path = Path(local_path)
    size = os.path.getsize(local_path)
    if offset > size:
        raise ValueError(f"offset {offset} is beyond the end of {local_path}")

    async with aiofiles.open(local_path, "rb") as f:
        if offset:
            await f.seek(offset)
        await session.stor_from(remote_path, f, offset)

    logger.debug("Uploaded %s -> %s (%d bytes)", local_path, remote_path, size - offset)
    return size - offset
