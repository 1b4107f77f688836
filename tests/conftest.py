"""Pytest fixtures for Codex Session Index tests."""

import json

import pytest

from codex_session_index.indexer import IndexBuilder

T0 = "2025-01-15T10:00:00.000Z"


def meta(session_id, timestamp=T0, cwd="/tmp", originator="cli", cli_version="0.42.0"):
    return {
        "timestamp": timestamp,
        "type": "session_meta",
        "payload": {
            "id": session_id,
            "timestamp": timestamp,
            "cwd": cwd,
            "originator": originator,
            "cli_version": cli_version,
        },
    }


def message(role, text, timestamp):
    fragment_type = "input_text" if role == "user" else "output_text"
    return {
        "timestamp": timestamp,
        "type": "response_item",
        "payload": {
            "type": "message",
            "role": role,
            "content": [{"type": fragment_type, "text": text}],
        },
    }


def tool_call(name, call_id, timestamp, arguments='{"command": ["ls"]}'):
    return {
        "timestamp": timestamp,
        "type": "response_item",
        "payload": {
            "type": "function_call",
            "name": name,
            "arguments": arguments,
            "call_id": call_id,
        },
    }


def tool_output(call_id, output, timestamp):
    return {
        "timestamp": timestamp,
        "type": "response_item",
        "payload": {"type": "function_call_output", "call_id": call_id, "output": output},
    }


def turn_aborted(timestamp):
    return {
        "timestamp": timestamp,
        "type": "event_msg",
        "payload": {"type": "turn_aborted", "reason": "interrupted"},
    }


def write_jsonl(path, records):
    """Write records to a JSONL file; strings are written as raw lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for record in records:
            line = record if isinstance(record, str) else json.dumps(record)
            f.write(line + "\n")
    return path


def example_records(session_id="abc"):
    """The end-to-end example: metadata, one message, one failing tool call."""
    return [
        meta(session_id),
        message("user", "List the files", "2025-01-15T10:00:01.000Z"),
        tool_call("shell", "1", "2025-01-15T10:00:02.000Z"),
        tool_output("1", '{"output": "", "metadata": {"exit_code": 1}}', "2025-01-15T10:00:03.000Z"),
    ]


@pytest.fixture
def sessions_dir(tmp_path):
    """Create a temporary ~/.codex/sessions directory."""
    directory = tmp_path / ".codex" / "sessions"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
def cache_dir(tmp_path):
    """Location of the temporary cache directory (created by the builder)."""
    return tmp_path / ".codex-viz" / "cache"


@pytest.fixture
def sample_sessions(sessions_dir):
    """Three sessions on two days, laid out in date folders like Codex does."""
    day1 = sessions_dir / "2025" / "01" / "15"
    day2 = sessions_dir / "2025" / "01" / "16"

    abc = write_jsonl(day1 / "rollout-abc.jsonl", example_records("abc"))
    defg = write_jsonl(
        day1 / "rollout-def.jsonl",
        [
            meta("def", timestamp="2025-01-15T18:00:00.000Z", cwd="/home/dev/api"),
            message("user", "Add a health endpoint", "2025-01-15T18:00:05.000Z"),
            message("assistant", "Done.", "2025-01-15T18:01:00.000Z"),
            tool_call("apply_patch", "p1", "2025-01-15T18:00:30.000Z"),
            tool_output("p1", "Success. Updated 1 file", "2025-01-15T18:00:31.000Z"),
            tool_call("shell", "s1", "2025-01-15T18:00:40.000Z"),
            tool_output("s1", "Traceback (most recent call last):", "2025-01-15T18:00:41.000Z"),
        ],
    )
    ghi = write_jsonl(
        day2 / "rollout-ghi.jsonl",
        [
            meta("ghi", timestamp="2025-01-16T09:00:00.000Z", originator="vscode"),
            message("user", "Why is CI red?", "2025-01-16T09:00:10.000Z"),
            turn_aborted("2025-01-16T09:00:20.000Z"),
        ],
    )
    return {"abc": abc, "def": defg, "ghi": ghi}


@pytest.fixture
def builder(sessions_dir, cache_dir):
    """Index builder over the temporary directories."""
    return IndexBuilder(sessions_dir=sessions_dir, cache_dir=cache_dir)
