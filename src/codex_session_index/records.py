"""Decode transcript log lines into typed records.

Each line of a session log is an independent JSON object with a ``type``
discriminator, a ``timestamp`` and a ``payload``. ``decode_record`` turns one
line into exactly one of the record variants below, or ``None`` when the line
is blank, malformed, or not a JSON object. Fields that are missing or of the
wrong type decode to ``None``; decoding never raises.
"""

import json
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None = None


class SessionMeta(_Record):
    """``session_meta``: identity and context of the session."""

    session_id: str | None = None
    started_at: datetime | None = None
    cwd: str | None = None
    originator: str | None = None
    cli_version: str | None = None


class TurnAborted(_Record):
    """``event_msg`` carrying a ``turn_aborted`` payload."""


class Message(_Record):
    """``response_item`` / ``message``."""

    role: str | None = None
    text: str | None = None


class ToolCall(_Record):
    """``response_item`` / ``function_call`` or ``custom_tool_call``."""

    name: str | None = None
    call_id: str | None = None
    arguments: str | None = None
    input: str | None = None


class ToolOutput(_Record):
    """``response_item`` / ``function_call_output`` or ``custom_tool_call_output``."""

    name: str | None = None
    call_id: str | None = None
    output: str | None = None


class OtherRecord(_Record):
    """Any other JSON object; only its timestamp is of interest."""


Record = SessionMeta | TurnAborted | Message | ToolCall | ToolOutput | OtherRecord

TOOL_CALL_TYPES = ("function_call", "custom_tool_call")
TOOL_OUTPUT_TYPES = ("function_call_output", "custom_tool_call_output")


def parse_timestamp(ts: str | int | None) -> datetime | None:
    """Parse a timestamp from various formats into an aware UTC datetime."""
    if ts is None or isinstance(ts, bool):
        return None
    if isinstance(ts, int):
        # Unix timestamp in milliseconds
        try:
            return datetime.fromtimestamp(ts / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(ts, str):
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None


def _str(value) -> str | None:
    return value if isinstance(value, str) else None


def extract_message_text(payload: dict) -> str | None:
    """Join the textual fragments of a message payload, or None if there are none."""
    content = payload.get("content")
    if isinstance(content, str):
        text = content.strip()
        return text or None
    if not isinstance(content, list):
        return None

    parts = []
    for fragment in content:
        if isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
            parts.append(fragment["text"])
    text = "\n".join(parts).strip()
    return text or None


def decode_record(line: str) -> Record | None:
    """Decode one log line. Returns None for lines that carry no usable record."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    timestamp = parse_timestamp(data.get("timestamp"))
    payload = data.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    record_type = data.get("type")
    payload_type = payload.get("type")

    if record_type == "session_meta":
        return SessionMeta(
            timestamp=timestamp,
            session_id=_str(payload.get("id")),
            started_at=timestamp or parse_timestamp(payload.get("timestamp")),
            cwd=_str(payload.get("cwd")),
            originator=_str(payload.get("originator")),
            cli_version=_str(payload.get("cli_version")),
        )

    if record_type == "event_msg" and payload_type == "turn_aborted":
        return TurnAborted(timestamp=timestamp)

    if record_type == "response_item":
        if payload_type == "message":
            return Message(
                timestamp=timestamp,
                role=_str(payload.get("role")),
                text=extract_message_text(payload),
            )
        if payload_type in TOOL_CALL_TYPES:
            return ToolCall(
                timestamp=timestamp,
                name=_str(payload.get("name")),
                call_id=_str(payload.get("call_id")),
                arguments=_str(payload.get("arguments")),
                input=_str(payload.get("input")),
            )
        if payload_type in TOOL_OUTPUT_TYPES:
            return ToolOutput(
                timestamp=timestamp,
                name=_str(payload.get("name")),
                call_id=_str(payload.get("call_id")),
                output=_str(payload.get("output")),
            )

    return OtherRecord(timestamp=timestamp)
