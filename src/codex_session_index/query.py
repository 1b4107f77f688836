"""Query operations over the session index."""

import logging
from datetime import UTC, datetime
from pathlib import Path

from .config import (
    DEFAULT_MAX_EVENTS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_OFFSET,
    DEFAULT_PREVIEW_CHARS,
)
from .indexer import SnapshotCache, get_snapshot_cache
from .models import (
    TIMELINE_KINDS,
    IndexSnapshot,
    SessionListResponse,
    SessionSummary,
    SessionTimelineResponse,
    TimelinePage,
)
from .timeline import TimelineCache, missing_session_response, resolve_session_file

logger = logging.getLogger(__name__)


def parse_date_filter(value: str | None) -> datetime | None:
    """Parse ISO 8601 date string to an aware UTC datetime.

    Accepts: "2025-01-15" or "2025-01-15T10:30:00" or "2025-01-15T10:30:00Z"
    Values without a timezone are taken as UTC, to match stored timestamps.

    Args:
        value: ISO 8601 date string or None

    Returns:
        Parsed datetime (UTC) or None if value is None

    Raises:
        ValueError: If the date format is invalid
    """
    if value is None:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(
            f"Invalid date format: {value}. Use ISO 8601 (e.g., 2025-01-15 or 2025-01-15T10:30:00Z)"
        ) from e
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


async def get_index_snapshot(cache: SnapshotCache | None = None) -> IndexSnapshot:
    """Get the current index snapshot."""
    cache = cache or get_snapshot_cache()
    return await cache.get()


async def get_session_timeline(
    session_id: str, cache: SnapshotCache | None = None
) -> SessionTimelineResponse:
    """
    Get the timeline of one session.

    A session whose log file cannot be found (or vanished) yields a response
    carrying a single error event instead of an exception.
    """
    cache = cache or get_snapshot_cache()
    snapshot = await cache.get()

    session = next((s for s in snapshot.sessions if s.id == session_id), None)
    if session is not None:
        path = Path(session.file)
    else:
        path = await resolve_session_file(session_id, Path(snapshot.sessions_dir))
    if path is None:
        return missing_session_response(session_id)

    timelines = TimelineCache(Path(snapshot.cache_dir))
    try:
        return await timelines.get(session_id, path, session)
    except OSError as e:
        logger.debug(f"Cannot read timeline for {session_id} from {path}: {e}")
        return missing_session_response(session_id)


def _sort_key(session: SessionSummary) -> tuple[bool, float]:
    started = session.started_at
    return (started is not None, started.timestamp() if started else 0.0)


def filter_sessions(
    sessions: list[SessionSummary],
    query: str | None = None,
    only_with_tools: bool = False,
    only_with_errors: bool = False,
    after: datetime | None = None,
    before: datetime | None = None,
) -> list[SessionSummary]:
    """Filter sessions and sort them newest first.

    Args:
        sessions: Sessions to filter
        query: Case-insensitive substring of the id, working directory or originator
        only_with_tools: Keep only sessions with at least one tool call
        only_with_errors: Keep only sessions with at least one error
        after: Keep sessions started on or after this datetime (inclusive)
        before: Keep sessions started before this datetime (exclusive)

    Returns:
        Matching sessions by start time descending; sessions without a start come last
    """
    needle = query.strip().lower() if query else None
    matches = []
    for session in sessions:
        if needle:
            fields = (session.id, session.cwd, session.originator)
            if not any(needle in v.lower() for v in fields if v):
                continue
        if only_with_tools and session.tool_calls == 0:
            continue
        if only_with_errors and session.errors == 0:
            continue
        if after is not None or before is not None:
            if session.started_at is None:
                continue
            if after is not None and session.started_at < after:
                continue
            if before is not None and session.started_at >= before:
                continue
        matches.append(session)

    matches.sort(key=_sort_key, reverse=True)
    return matches


async def list_sessions(
    query: str | None = None,
    only_with_tools: bool = False,
    only_with_errors: bool = False,
    after: str | None = None,
    before: str | None = None,
    max_results: int = DEFAULT_MAX_SESSIONS,
    offset: int = DEFAULT_OFFSET,
    cache: SnapshotCache | None = None,
) -> SessionListResponse:
    """
    List indexed sessions matching the filters.

    Args:
        query: Case-insensitive substring of the id, working directory or originator
        only_with_tools: Keep only sessions with tool calls
        only_with_errors: Keep only sessions with errors
        after: Sessions started on/after this date (inclusive). ISO 8601 format.
        before: Sessions started before this date (exclusive). ISO 8601 format.
        max_results: Maximum number of sessions to return
        offset: Number of sessions to skip (for pagination)
        cache: Snapshot cache to read from (defaults to the global one)

    Returns:
        SessionListResponse with sessions, total matches, and pagination info
    """
    _check_paging(offset, max_results, "max_results")
    after_dt = parse_date_filter(after)
    before_dt = parse_date_filter(before)

    snapshot = await get_index_snapshot(cache)
    matches = filter_sessions(
        snapshot.sessions,
        query=query,
        only_with_tools=only_with_tools,
        only_with_errors=only_with_errors,
        after=after_dt,
        before=before_dt,
    )
    page = matches[offset : offset + max_results]
    has_more = offset + len(page) < len(matches)

    return SessionListResponse(
        sessions=page,
        total_matches=len(matches),
        offset=offset,
        has_more=has_more,
        hint=_generate_hint(
            total=len(matches),
            offset=offset,
            count=len(page),
            limit=max_results,
            has_more=has_more,
            noun="sessions",
        ),
    )


def paginate_timeline(
    response: SessionTimelineResponse,
    offset: int = DEFAULT_OFFSET,
    max_events: int = DEFAULT_MAX_EVENTS,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
    kinds: list[str] | None = None,
) -> TimelinePage:
    """Cut a window out of a timeline, shortening long event texts.

    Args:
        response: Full timeline of a session
        offset: Number of (filtered) events to skip
        max_events: Maximum number of events to return
        preview_chars: Maximum characters of text per event
        kinds: Event kinds to keep, applied before the window is cut (default: all)

    Returns:
        TimelinePage with the window, per-kind counts over the full timeline,
        and pagination info

    Raises:
        ValueError: If a paging value is out of range or a kind is unknown
    """
    _check_paging(offset, max_events, "max_events")
    if preview_chars < 1:
        raise ValueError(f"preview_chars must be at least 1, got {preview_chars}")
    if kinds is not None:
        unknown = sorted(set(kinds) - set(TIMELINE_KINDS))
        if unknown:
            raise ValueError(
                f"Unknown event kinds: {', '.join(unknown)}. Use any of: {', '.join(TIMELINE_KINDS)}"
            )

    counts = dict.fromkeys(TIMELINE_KINDS, 0)
    for event in response.events:
        counts[event.kind] += 1

    selected = response.events
    if kinds is not None:
        selected = [event for event in selected if event.kind in kinds]

    window = selected[offset : offset + max_events]
    events = [
        event.model_copy(update={"text": _truncate_content(event.text, preview_chars)})
        if event.text
        else event
        for event in window
    ]
    total = len(selected)
    has_more = offset + len(events) < total

    return TimelinePage(
        summary=response.summary,
        truncated=response.truncated,
        total_events=total,
        counts=counts,
        offset=offset,
        has_more=has_more,
        events=events,
        hint=_generate_hint(
            total=total,
            offset=offset,
            count=len(events),
            limit=max_events,
            has_more=has_more,
            noun="events",
        ),
    )


def _check_paging(offset: int, limit: int, limit_name: str) -> None:
    """Reject paging values that cannot describe a window."""
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")
    if limit < 1:
        raise ValueError(f"{limit_name} must be at least 1, got {limit}")


def _truncate_content(content: str, max_length: int = DEFAULT_PREVIEW_CHARS) -> str:
    """Truncate content to a maximum length."""
    if len(content) <= max_length:
        return content
    if max_length <= 3:
        return content[:max_length]
    return content[: max_length - 3] + "..."


def _generate_hint(
    total: int,
    offset: int,
    count: int,
    limit: int,
    has_more: bool,
    noun: str,
) -> str:
    """Generate a helpful hint about pagination."""
    if total == 0:
        return f"No {noun} found."

    # 1-indexed for human readability
    start = offset + 1
    end = offset + count

    if has_more:
        return (
            f"Showing {start}-{end} of {total} {noun}. "
            f"To retrieve more, use offset: {offset + limit}."
        )
    if count == 0:
        return f"Offset {offset} is past the last of {total} {noun}."
    if start == 1:
        return f"Showing all {total} {noun}."
    return f"Showing {start}-{end} of {total} {noun} (final page)."
