"""Discover and stream session log files."""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import aclosing
from pathlib import Path

from .config import (
    CACHE_DIR_ENV,
    DEFAULT_CACHE_DIR,
    DEFAULT_SESSIONS_DIR,
    LOG_EXTENSION,
    READ_CHUNK_SIZE,
    SESSIONS_DIR_ENV,
)
from .records import Record, decode_record

logger = logging.getLogger(__name__)


def get_sessions_dir() -> Path:
    """Get the directory containing session logs."""
    override = os.environ.get(SESSIONS_DIR_ENV)
    return Path(override) if override else DEFAULT_SESSIONS_DIR


def get_cache_dir() -> Path:
    """Get the directory holding the manifest, index and timeline caches."""
    override = os.environ.get(CACHE_DIR_ENV)
    return Path(override) if override else DEFAULT_CACHE_DIR


def _scan_dir(directory: Path) -> tuple[list[Path], list[Path]]:
    """List (subdirectories, log files) of one directory, without following symlinks."""
    subdirs = []
    files = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False) and entry.name.endswith(LOG_EXTENSION):
                files.append(Path(entry.path))
    return subdirs, files


async def list_log_files(root: Path) -> list[Path]:
    """
    Recursively list all log files under root.

    Directories that are missing or cannot be read contribute nothing.

    Returns:
        Absolute paths in directory-listing order.
    """
    found: list[Path] = []

    async def walk(directory: Path) -> None:
        try:
            subdirs, files = await asyncio.to_thread(_scan_dir, directory)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return
        for subdir in subdirs:
            await walk(subdir)
        found.extend(files)

    await walk(Path(root).absolute())
    return found


async def iter_lines(path: Path, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[str]:
    """
    Stream a file as text lines without loading it into memory.

    The file is read in binary chunks off the event loop and split on newlines;
    a final line without a trailing newline is still yielded.
    """
    f = await asyncio.to_thread(open, path, "rb")
    try:
        pending = b""
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                yield line.decode("utf-8", errors="replace").rstrip("\r")
        if pending:
            yield pending.decode("utf-8", errors="replace").rstrip("\r")
    finally:
        f.close()


async def read_first_line(path: Path) -> str | None:
    """Read only the first line of a file, or None if it is empty."""
    lines = iter_lines(path)
    try:
        async for line in lines:
            return line
    finally:
        await lines.aclose()
    return None


async def iter_records(path: Path) -> AsyncIterator[Record]:
    """Stream decoded records from a log file, dropping lines that do not decode."""
    async with aclosing(iter_lines(path)) as lines:
        async for line in lines:
            record = decode_record(line)
            if record is not None:
                yield record
