"""Reconstruct and cache per-session event timelines."""

import asyncio
import logging
import os
from contextlib import aclosing
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote

from .config import MAX_TIMELINE_EVENTS, SESSION_DIR, UNKNOWN_TOOL
from .loader import iter_records, list_log_files, read_first_line
from .models import CachedTimeline, SessionSummary, SessionTimelineResponse, TimelineEvent
from .records import Message, Record, SessionMeta, ToolCall, ToolOutput, TurnAborted, decode_record
from .storage import ensure_dir, read_model, write_model
from .summarizer import summarize_file

logger = logging.getLogger(__name__)


async def resolve_session_file(session_id: str, sessions_dir: Path) -> Path | None:
    """
    Find the log file of a session.

    Prefers a file named after the session id; otherwise looks for a file whose
    first line is a session_meta record carrying that id.
    """
    files = await list_log_files(sessions_dir)
    for path in files:
        if path.stem == session_id:
            return path

    for path in files:
        try:
            first_line = await read_first_line(path)
        except OSError:
            continue
        if first_line is None:
            continue
        record = decode_record(first_line)
        if isinstance(record, SessionMeta) and record.session_id == session_id:
            return path
    return None


def _event_for(record: Record, call_names: dict[str, str]) -> TimelineEvent | None:
    """Map one record to a timeline event, updating the pass-local call-id map."""
    if isinstance(record, TurnAborted):
        return TimelineEvent(ts=record.timestamp, kind="error", text="turn_aborted")

    if isinstance(record, Message):
        kind = record.role if record.role in ("user", "assistant") else "other"
        return TimelineEvent(ts=record.timestamp, kind=kind, text=record.text)

    if isinstance(record, ToolCall):
        name = record.name or UNKNOWN_TOOL
        if record.call_id:
            call_names[record.call_id] = name
        return TimelineEvent(
            ts=record.timestamp,
            kind="tool_call",
            name=name,
            text=record.arguments or record.input or None,
        )

    if isinstance(record, ToolOutput):
        name = record.name
        if name is None and record.call_id:
            name = call_names.get(record.call_id)
        return TimelineEvent(
            ts=record.timestamp, kind="tool_output", name=name, text=record.output or None
        )

    return None


async def extract_timeline(
    path: Path, summary: SessionSummary, max_events: int = MAX_TIMELINE_EVENTS
) -> SessionTimelineResponse:
    """
    Stream a log file into its ordered timeline.

    Stops reading once max_events events have been emitted and marks the
    response as truncated.
    """
    events: list[TimelineEvent] = []
    call_names: dict[str, str] = {}
    truncated = False

    async with aclosing(iter_records(path)) as records:
        async for record in records:
            event = _event_for(record, call_names)
            if event is None:
                continue
            events.append(event)
            if len(events) >= max_events:
                truncated = True
                break

    return SessionTimelineResponse(summary=summary, truncated=truncated, events=events)


def missing_session_response(session_id: str) -> SessionTimelineResponse:
    """Well-formed response for a session whose log file cannot be found."""
    summary = SessionSummary(id=session_id, file="", errors=1)
    event = TimelineEvent(
        ts=datetime.now(UTC),
        kind="error",
        text=f"No session log file found for session {session_id}",
    )
    return SessionTimelineResponse(summary=summary, truncated=False, events=[event])


class TimelineCache:
    """Per-session timelines persisted under the cache directory."""

    def __init__(self, cache_dir: Path):
        self.directory = Path(cache_dir) / SESSION_DIR

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"{quote(session_id, safe='')}.json"

    async def load(self, session_id: str, stat: os.stat_result) -> SessionTimelineResponse | None:
        """Cached timeline for a session, if it was built from the file as it is now."""
        cached = await read_model(self.path_for(session_id), CachedTimeline)
        if cached is None:
            return None
        if cached.file_mtime_ns != stat.st_mtime_ns or cached.file_size != stat.st_size:
            return None
        return SessionTimelineResponse(
            summary=cached.summary, truncated=cached.truncated, events=cached.events
        )

    async def store(
        self, session_id: str, response: SessionTimelineResponse, stat: os.stat_result
    ) -> None:
        await ensure_dir(self.directory)
        cached = CachedTimeline(
            summary=response.summary,
            truncated=response.truncated,
            events=response.events,
            file_mtime_ns=stat.st_mtime_ns,
            file_size=stat.st_size,
        )
        await write_model(self.path_for(session_id), cached)

    async def get(
        self, session_id: str, path: Path, summary: SessionSummary | None = None
    ) -> SessionTimelineResponse:
        """
        Get a session timeline, extracting it again if the file changed.

        Args:
            session_id: Session id the cache entry is stored under
            path: Log file of the session
            summary: Summary to attach; computed from the file when omitted

        Raises:
            OSError: If the log file cannot be read.
        """
        stat = await asyncio.to_thread(path.stat)
        cached = await self.load(session_id, stat)
        if cached is not None:
            logger.debug(f"Timeline cache hit for {session_id}")
            return cached

        if summary is None:
            summary = (await summarize_file(path)).summary
        response = await extract_timeline(path, summary)
        try:
            await self.store(session_id, response, stat)
        except OSError as e:
            logger.warning(f"Cannot cache timeline for {session_id}: {e}")
        return response
