"""Pydantic data models for Codex Session Index."""

import os
from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, Field

TimelineKind = Literal["user", "assistant", "tool_call", "tool_output", "error", "other"]
TIMELINE_KINDS: tuple[str, ...] = get_args(TimelineKind)


class SessionSummary(BaseModel):
    """Per-session counters and context derived from one log file."""

    id: str
    file: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_sec: int | None = None
    cwd: str | None = None
    originator: str | None = None
    cli_version: str | None = None
    messages: int = 0
    tool_calls: int = 0
    errors: int = 0


class FileSummary(BaseModel):
    """Everything the index keeps from summarizing a single file."""

    session_id: str
    summary: SessionSummary
    tools: dict[str, int] = Field(default_factory=dict)
    daily_key: str


class ManifestEntry(BaseModel):
    """Cached summary of one file, keyed by its absolute path in the manifest."""

    mtime_ns: int
    size: int
    session_id: str
    summary: SessionSummary
    tools: dict[str, int] = Field(default_factory=dict)
    daily_key: str

    def matches(self, stat: os.stat_result) -> bool:
        """Whether the live file still has the fingerprint this entry was built from."""
        return self.mtime_ns == stat.st_mtime_ns and self.size == stat.st_size


class Manifest(BaseModel):
    """Persisted per-file fingerprint cache for incremental rebuilds."""

    version: int
    sessions_dir: str
    files: dict[str, ManifestEntry] = Field(default_factory=dict)


class DailyAgg(BaseModel):
    """Counters for all sessions started on one calendar day."""

    sessions: int = 0
    messages: int = 0
    tool_calls: int = 0
    errors: int = 0

    def add(self, summary: SessionSummary) -> None:
        self.sessions += 1
        self.messages += summary.messages
        self.tool_calls += summary.tool_calls
        self.errors += summary.errors


class IndexTotals(BaseModel):
    files: int = 0
    sessions: int = 0
    messages: int = 0
    tool_calls: int = 0
    errors: int = 0


class IndexSnapshot(BaseModel):
    """The complete index as of one build."""

    version: int
    generated_at: datetime
    sessions_dir: str
    cache_dir: str
    totals: IndexTotals = Field(default_factory=IndexTotals)
    tools: dict[str, int] = Field(default_factory=dict)
    daily: dict[str, DailyAgg] = Field(default_factory=dict)
    sessions: list[SessionSummary] = Field(default_factory=list)


class TimelineEvent(BaseModel):
    """One displayable event of a session timeline."""

    ts: datetime | None = None
    kind: TimelineKind
    name: str | None = None
    text: str | None = None


class SessionTimelineResponse(BaseModel):
    """A session summary with its ordered, capped timeline."""

    summary: SessionSummary
    truncated: bool = False
    events: list[TimelineEvent] = Field(default_factory=list)


class CachedTimeline(SessionTimelineResponse):
    """Timeline as persisted in the cache, with the fingerprint it was built from."""

    file_mtime_ns: int
    file_size: int


class TimelinePage(BaseModel):
    """A window over a session timeline."""

    summary: SessionSummary
    truncated: bool = False
    total_events: int = 0
    counts: dict[str, int] = Field(default_factory=dict)
    offset: int = 0
    has_more: bool = False
    events: list[TimelineEvent] = Field(default_factory=list)
    hint: str = ""


class SessionListResponse(BaseModel):
    """Response from the list_sessions tool."""

    sessions: list[SessionSummary]
    total_matches: int
    offset: int = 0
    has_more: bool = False
    hint: str = ""
