"""FastMCP server for Codex Session Index."""

import logging
import os

from mcp.server.fastmcp import FastMCP

from .config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_EVENTS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_OFFSET,
    DEFAULT_PREVIEW_CHARS,
    LOG_LEVEL_ENV,
)
from .models import TimelineKind
from .query import get_index_snapshot, paginate_timeline
from .query import get_session_timeline as query_timeline
from .query import list_sessions as query_sessions

logger = logging.getLogger(__name__)

# Create the MCP server
mcp = FastMCP("codex-session-index")


def _get_log_level() -> int:
    """Get the server log level from the environment, falling back to the default."""
    name = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelNamesMapping().get(name)
    if level is None:
        logger.warning(f"Invalid {LOG_LEVEL_ENV} value: {name}, using {DEFAULT_LOG_LEVEL}")
        return logging.getLevelNamesMapping()[DEFAULT_LOG_LEVEL]
    return level


@mcp.tool()
async def get_index(include_sessions: bool = False) -> dict:
    """
    Get aggregate statistics over all recorded Codex sessions.

    Use this for an overview: totals of sessions, messages, tool calls and errors,
    the most used tools, and activity per day.

    Args:
        include_sessions: Also return every session summary (default: false;
            use list_sessions to page through them instead)

    Returns:
        Index snapshot with totals, tool histogram, daily buckets and generation time
    """
    snapshot = await get_index_snapshot()
    exclude = None if include_sessions else {"sessions"}
    return snapshot.model_dump(mode="json", exclude=exclude)


@mcp.tool()
async def list_sessions(
    query: str | None = None,
    only_with_tools: bool = False,
    only_with_errors: bool = False,
    after: str | None = None,
    before: str | None = None,
    max_results: int = DEFAULT_MAX_SESSIONS,
    offset: int = DEFAULT_OFFSET,
) -> dict:
    """
    List recorded Codex sessions, newest first.

    Args:
        query: Substring of the session id, working directory or originator
        only_with_tools: Only sessions that called tools (default: false)
        only_with_errors: Only sessions with errors (default: false)
        after: Sessions started on/after this date (ISO 8601)
        before: Sessions started before this date (ISO 8601)
        max_results: Maximum number of sessions to return (default: 50)
        offset: Number of sessions to skip for pagination (default: 0)

    Returns:
        Session summaries with pagination info (total_matches, offset, has_more)
    """
    result = await query_sessions(
        query=query,
        only_with_tools=only_with_tools,
        only_with_errors=only_with_errors,
        after=after,
        before=before,
        max_results=max_results,
        offset=offset,
    )
    return result.model_dump(mode="json")


@mcp.tool()
async def get_session_timeline(
    session_id: str,
    offset: int = DEFAULT_OFFSET,
    max_events: int = DEFAULT_MAX_EVENTS,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
    kinds: list[TimelineKind] | None = None,
) -> dict:
    """
    Get the event timeline of one session: messages, tool calls, tool outputs and errors.

    Args:
        session_id: Session id (log file name or the id recorded in its metadata)
        offset: Number of events to skip for pagination (default: 0)
        max_events: Maximum number of events to return (default: 200)
        preview_chars: Maximum characters of text per event (default: 2000)
        kinds: Only these event kinds (user, assistant, tool_call, tool_output, error,
            other); default: all. Per-kind counts always cover the whole timeline.

    Returns:
        Session summary and a page of timeline events with pagination info
    """
    response = await query_timeline(session_id)
    page = paginate_timeline(
        response,
        offset=offset,
        max_events=max_events,
        preview_chars=preview_chars,
        kinds=kinds,
    )
    return page.model_dump(mode="json")


def main():
    """Run the MCP server."""
    logging.basicConfig(
        level=_get_log_level(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    mcp.run()


if __name__ == "__main__":
    main()
