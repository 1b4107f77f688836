"""Summarize one session log file into counters, timing and a tool histogram."""

import json
import math
import re
from datetime import datetime
from pathlib import Path

from .config import ERROR_OUTPUT_PATTERN, UNKNOWN_DAY, UNKNOWN_TOOL
from .loader import iter_records
from .models import FileSummary, SessionSummary
from .records import Message, Record, SessionMeta, ToolCall, ToolOutput, TurnAborted

_ERROR_RE = re.compile(ERROR_OUTPUT_PATTERN, re.IGNORECASE)

COUNTED_ROLES = ("user", "assistant")


def _exit_code_failed(output: str) -> bool:
    """Whether a JSON-wrapped tool output reports a non-zero metadata.exit_code."""
    if not output.lstrip().startswith("{"):
        return False
    try:
        parsed = json.loads(output)
    except json.JSONDecodeError:
        return False
    if not isinstance(parsed, dict):
        return False
    metadata = parsed.get("metadata")
    if not isinstance(metadata, dict):
        return False
    exit_code = metadata.get("exit_code")
    if isinstance(exit_code, bool) or not isinstance(exit_code, int | float):
        return False
    return exit_code != 0


def is_error_output(output: str | None) -> bool:
    """Whether a tool output looks like a failure."""
    if not output:
        return False
    return bool(_ERROR_RE.search(output)) or _exit_code_failed(output)


def day_key(started_at: datetime | None) -> str:
    """Calendar date (UTC) used to bucket a session, or the unknown sentinel."""
    if started_at is None:
        return UNKNOWN_DAY
    return started_at.date().isoformat()


class SessionAccumulator:
    """
    Fold the records of one log file into a FileSummary.

    The call-id map lives only as long as the accumulator, so tool names are
    never correlated across files.
    """

    def __init__(self, path: Path):
        self.session_id = path.stem
        self.summary = SessionSummary(id=self.session_id, file=str(path))
        self.tools: dict[str, int] = {}
        self._call_names: dict[str, str] = {}
        self._first_seen: datetime | None = None
        self._last_seen: datetime | None = None

    def add(self, record: Record) -> None:
        if record.timestamp is not None:
            if self._first_seen is None:
                self._first_seen = record.timestamp
            self._last_seen = record.timestamp

        if isinstance(record, SessionMeta):
            # Last metadata record wins for context fields; counters are kept
            self.summary.id = record.session_id or self.session_id
            self.summary.started_at = record.started_at
            self.summary.cwd = record.cwd
            self.summary.originator = record.originator
            self.summary.cli_version = record.cli_version
            if self._first_seen is None and record.started_at is not None:
                self._first_seen = record.started_at
        elif isinstance(record, TurnAborted):
            self.summary.errors += 1
        elif isinstance(record, Message):
            if record.role in COUNTED_ROLES:
                self.summary.messages += 1
        elif isinstance(record, ToolCall):
            name = record.name or UNKNOWN_TOOL
            self.summary.tool_calls += 1
            self.tools[name] = self.tools.get(name, 0) + 1
            if record.call_id:
                self._call_names[record.call_id] = name
        elif isinstance(record, ToolOutput):
            if is_error_output(record.output):
                self.summary.errors += 1

    def finish(self) -> FileSummary:
        summary = self.summary
        summary.started_at = summary.started_at or self._first_seen
        summary.ended_at = self._last_seen
        summary.duration_sec = None
        if summary.started_at and summary.ended_at and summary.ended_at >= summary.started_at:
            summary.duration_sec = math.floor(
                (summary.ended_at - summary.started_at).total_seconds()
            )

        return FileSummary(
            session_id=self.session_id,
            summary=summary,
            tools=dict(self.tools),
            daily_key=day_key(summary.started_at),
        )


async def summarize_file(path: Path) -> FileSummary:
    """
    Stream a log file and summarize it.

    Malformed lines are skipped; I/O errors (e.g. the file vanished) propagate
    as OSError.
    """
    accumulator = SessionAccumulator(Path(path))
    async for record in iter_records(path):
        accumulator.add(record)
    return accumulator.finish()
