"""Codex Session Index - Incremental index and timelines for Codex session logs."""

from .indexer import IndexBuilder, SnapshotCache, get_snapshot_cache
from .models import (
    DailyAgg,
    IndexSnapshot,
    SessionListResponse,
    SessionSummary,
    SessionTimelineResponse,
    TimelineEvent,
    TimelinePage,
)
from .query import get_index_snapshot, get_session_timeline, list_sessions

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "IndexBuilder",
    "SnapshotCache",
    "get_snapshot_cache",
    "get_index_snapshot",
    "get_session_timeline",
    "list_sessions",
    "DailyAgg",
    "IndexSnapshot",
    "SessionSummary",
    "SessionTimelineResponse",
    "TimelineEvent",
    "TimelinePage",
    "SessionListResponse",
]
