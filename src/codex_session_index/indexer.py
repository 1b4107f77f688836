"""Incremental session index with a manifest cache and a process-wide snapshot cache."""

import asyncio
import functools
import logging
from datetime import UTC, datetime
from pathlib import Path

from .config import INDEX_FILE, INDEX_VERSION, MANIFEST_FILE, SESSION_DIR
from .loader import get_cache_dir, get_sessions_dir, list_log_files
from .models import (
    DailyAgg,
    IndexSnapshot,
    IndexTotals,
    Manifest,
    ManifestEntry,
    SessionSummary,
)
from .storage import ensure_dir, read_model, write_model
from .summarizer import summarize_file

logger = logging.getLogger(__name__)


async def load_manifest(path: Path, sessions_dir: str) -> Manifest:
    """
    Load the persisted manifest.

    A manifest that is missing, invalid, of another schema version, or built
    against another sessions directory is replaced by an empty one, forcing a
    full rebuild.
    """
    manifest = await read_model(path, Manifest)
    if manifest is None:
        return Manifest(version=INDEX_VERSION, sessions_dir=sessions_dir)
    if manifest.version != INDEX_VERSION or manifest.sessions_dir != sessions_dir:
        logger.info(
            f"Discarding manifest (version {manifest.version}, {manifest.sessions_dir}); "
            f"rebuilding for {sessions_dir}"
        )
        return Manifest(version=INDEX_VERSION, sessions_dir=sessions_dir)
    return manifest


async def load_snapshot(path: Path) -> IndexSnapshot | None:
    """Load a persisted snapshot, or None if absent or of another schema version."""
    snapshot = await read_model(path, IndexSnapshot)
    if snapshot is None or snapshot.version != INDEX_VERSION:
        return None
    return snapshot


class IndexBuilder:
    """Build an IndexSnapshot, re-summarizing only files whose fingerprint changed."""

    def __init__(self, sessions_dir: Path | None = None, cache_dir: Path | None = None):
        self.sessions_dir = Path(sessions_dir or get_sessions_dir()).absolute()
        self.cache_dir = Path(cache_dir or get_cache_dir()).absolute()

    @property
    def manifest_path(self) -> Path:
        return self.cache_dir / MANIFEST_FILE

    @property
    def index_path(self) -> Path:
        return self.cache_dir / INDEX_FILE

    @property
    def session_cache_dir(self) -> Path:
        return self.cache_dir / SESSION_DIR

    async def _entry_for(self, path: Path, manifest: Manifest) -> ManifestEntry | None:
        """Reuse the manifest entry for path if still valid, else re-summarize the file."""
        try:
            stat = await asyncio.to_thread(path.stat)
        except OSError as e:
            logger.debug(f"Skipping {path}: {e}")
            return None

        key = str(path)
        entry = manifest.files.get(key)
        if entry is not None and entry.matches(stat):
            return entry

        try:
            built = await summarize_file(path)
        except OSError as e:
            logger.debug(f"Skipping {path}: {e}")
            return None

        entry = ManifestEntry(
            mtime_ns=stat.st_mtime_ns,
            size=stat.st_size,
            session_id=built.session_id,
            summary=built.summary,
            tools=built.tools,
            daily_key=built.daily_key,
        )
        manifest.files[key] = entry
        return entry

    async def build(self) -> IndexSnapshot:
        """
        Scan the sessions directory and build a fresh snapshot.

        Both the manifest and the snapshot are persisted atomically before
        the snapshot is returned.
        """
        await ensure_dir(self.cache_dir)
        await ensure_dir(self.session_cache_dir)

        sessions_dir = str(self.sessions_dir)
        manifest = await load_manifest(self.manifest_path, sessions_dir)
        previous = dict(manifest.files)

        files = await list_log_files(self.sessions_dir)
        sessions: list[SessionSummary] = []
        tools: dict[str, int] = {}
        daily: dict[str, DailyAgg] = {}
        seen: set[str] = set()
        reused = 0

        for path in files:
            entry = await self._entry_for(path, manifest)
            if entry is None:
                continue
            seen.add(str(path))
            if previous.get(str(path)) is entry:
                reused += 1

            sessions.append(entry.summary)
            for name, count in entry.tools.items():
                tools[name] = tools.get(name, 0) + count
            daily.setdefault(entry.daily_key, DailyAgg()).add(entry.summary)

        # Prune entries for files that are gone
        for key in list(manifest.files):
            if key not in seen:
                del manifest.files[key]

        totals = IndexTotals(
            files=len(files),
            sessions=len(sessions),
            messages=sum(s.messages for s in sessions),
            tool_calls=sum(s.tool_calls for s in sessions),
            errors=sum(s.errors for s in sessions),
        )
        snapshot = IndexSnapshot(
            version=INDEX_VERSION,
            generated_at=datetime.now(UTC),
            sessions_dir=sessions_dir,
            cache_dir=str(self.cache_dir),
            totals=totals,
            tools=tools,
            daily=daily,
            sessions=sessions,
        )

        await write_model(self.manifest_path, manifest)
        await write_model(self.index_path, snapshot)

        logger.info(
            f"Indexed {len(sessions)} sessions from {sessions_dir}: "
            f"{reused} reused, {len(sessions) - reused} summarized"
        )
        return snapshot


class SnapshotCache:
    """
    Process-wide holder of the latest IndexSnapshot.

    Lifecycle: empty at start, populated on first access, replaced (never
    merged) when a rebuild completes, emptied by clear(). At most one load,
    build or background refresh runs at a time; every caller that needs a
    build joins the one in flight.
    """

    def __init__(self, builder: IndexBuilder | None = None):
        self.builder = builder or IndexBuilder()
        self._snapshot: IndexSnapshot | None = None
        self._in_flight: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def snapshot(self) -> IndexSnapshot | None:
        """The snapshot currently held in memory, if any."""
        return self._snapshot

    async def get(self) -> IndexSnapshot:
        """
        Get the current snapshot.

        Order of preference: the in-memory snapshot; the result of a build
        already in flight; a persisted snapshot (returned immediately while a
        background rebuild refreshes it); a synchronous rebuild.
        """
        if self._snapshot is not None:
            return self._snapshot
        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._in_flight)

    async def rebuild(self) -> IndexSnapshot:
        """Rebuild now and replace the in-memory snapshot, joining any build in flight."""
        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._build())
        task = self._in_flight
        result = await asyncio.shield(task)
        # A load that served the persisted snapshot hands over to its refresh
        if self._in_flight is not None and self._in_flight is not task:
            return await asyncio.shield(self._in_flight)
        return result

    async def wait_for_refresh(self) -> None:
        """Wait for a pending background refresh, if any."""
        if self._refresh_task is not None:
            await self._refresh_task

    def clear(self) -> None:
        """Drop the in-memory snapshot; the next get() reloads it."""
        self._snapshot = None

    def _release(self) -> None:
        # Only the task currently registered as in flight may unregister itself
        if self._in_flight is asyncio.current_task():
            self._in_flight = None

    async def _build(self) -> IndexSnapshot:
        try:
            fresh = await self.builder.build()
            self._snapshot = fresh
            return fresh
        finally:
            self._release()

    async def _load(self) -> IndexSnapshot:
        try:
            persisted = await load_snapshot(self.builder.index_path)
            if persisted is not None:
                logger.debug(f"Serving persisted snapshot from {persisted.generated_at}")
                self._snapshot = persisted
                self._refresh_task = asyncio.ensure_future(self._refresh(persisted))
                self._in_flight = self._refresh_task
                return persisted

            fresh = await self.builder.build()
            self._snapshot = fresh
            return fresh
        finally:
            self._release()

    async def _refresh(self, stale: IndexSnapshot) -> IndexSnapshot:
        """Rebuild in the background; on failure the stale snapshot stays in place."""
        try:
            fresh = await self.builder.build()
        except Exception as e:
            logger.warning(f"Background index refresh failed: {e}")
            return self._snapshot or stale
        finally:
            self._release()
        self._snapshot = fresh
        return fresh


@functools.lru_cache(maxsize=1)
def get_snapshot_cache() -> SnapshotCache:
    """Get or create the global snapshot cache (singleton via lru_cache)."""
    return SnapshotCache()
