"""Tests for timeline extraction and caching."""

import asyncio
import json
from unittest.mock import patch

from conftest import example_records, message, meta, tool_call, tool_output, turn_aborted, write_jsonl

from codex_session_index.models import SessionSummary
from codex_session_index.timeline import (
    TimelineCache,
    extract_timeline,
    missing_session_response,
    resolve_session_file,
)


class TestResolveSessionFile:
    """Tests for locating a session's log file."""

    def test_exact_stem_match(self, sessions_dir, sample_sessions):
        path = asyncio.run(resolve_session_file("rollout-abc", sessions_dir))
        assert path == sample_sessions["abc"]

    def test_metadata_id_match(self, sessions_dir, sample_sessions):
        path = asyncio.run(resolve_session_file("ghi", sessions_dir))
        assert path == sample_sessions["ghi"]

    def test_only_first_line_is_checked(self, sessions_dir):
        write_jsonl(
            sessions_dir / "late-meta.jsonl",
            [message("user", "hi", "2025-01-15T10:00:00Z"), meta("hidden")],
        )
        assert asyncio.run(resolve_session_file("hidden", sessions_dir)) is None

    def test_not_found(self, sessions_dir, sample_sessions):
        assert asyncio.run(resolve_session_file("nope", sessions_dir)) is None

    def test_missing_sessions_dir(self, tmp_path):
        assert asyncio.run(resolve_session_file("abc", tmp_path / "missing")) is None


class TestExtractTimeline:
    """Tests for timeline extraction."""

    def test_events_in_file_order(self, tmp_path):
        path = write_jsonl(
            tmp_path / "s.jsonl",
            [
                meta("s"),
                message("user", "Run the tests", "2025-01-15T10:00:01Z"),
                tool_call("shell", "c1", "2025-01-15T10:00:02Z", arguments='{"command": ["pytest"]}'),
                tool_output("c1", "1 failed", "2025-01-15T10:00:03Z"),
                {
                    "timestamp": "2025-01-15T10:00:04Z",
                    "type": "response_item",
                    "payload": {"type": "custom_tool_call", "name": "apply_patch", "input": "*** Begin Patch"},
                },
                {
                    "timestamp": "2025-01-15T10:00:05Z",
                    "type": "response_item",
                    "payload": {"type": "message", "role": "developer", "content": []},
                },
                turn_aborted("2025-01-15T10:00:06Z"),
                message("assistant", "Fixed.", "2025-01-15T10:00:07Z"),
            ],
        )
        summary = SessionSummary(id="s", file=str(path))
        response = asyncio.run(extract_timeline(path, summary))

        assert response.truncated is False
        assert response.summary == summary
        assert [e.kind for e in response.events] == [
            "user",
            "tool_call",
            "tool_output",
            "tool_call",
            "other",
            "error",
            "assistant",
        ]
        user, call, output, patch_call, other, error, assistant = response.events
        assert user.text == "Run the tests"
        assert call.name == "shell"
        assert call.text == '{"command": ["pytest"]}'
        assert output.name == "shell"
        assert output.text == "1 failed"
        assert patch_call.name == "apply_patch"
        assert patch_call.text == "*** Begin Patch"
        assert other.text is None
        assert error.text == "turn_aborted"
        assert assistant.text == "Fixed."

    def test_output_without_known_call(self, tmp_path):
        path = write_jsonl(tmp_path / "s.jsonl", [tool_output("zz", "orphan", "2025-01-15T10:00:00Z")])
        response = asyncio.run(extract_timeline(path, SessionSummary(id="s", file=str(path))))
        assert response.events[0].name is None
        assert response.events[0].text == "orphan"

    def test_truncation(self, tmp_path):
        """More than the cap yields exactly the first max events, in order."""
        records = [message("user", f"msg {i}", "2025-01-15T10:00:00Z") for i in range(5003)]
        path = write_jsonl(tmp_path / "big.jsonl", records)
        response = asyncio.run(extract_timeline(path, SessionSummary(id="big", file=str(path))))

        assert response.truncated is True
        assert len(response.events) == 5000
        assert response.events[0].text == "msg 0"
        assert response.events[-1].text == "msg 4999"

    def test_custom_cap(self, tmp_path):
        path = write_jsonl(tmp_path / "s.jsonl", example_records("s"))
        response = asyncio.run(
            extract_timeline(path, SessionSummary(id="s", file=str(path)), max_events=2)
        )
        assert response.truncated is True
        assert [e.kind for e in response.events] == ["user", "tool_call"]


class TestMissingSessionResponse:
    def test_shape(self):
        response = missing_session_response("ghost")
        assert response.summary.id == "ghost"
        assert response.summary.errors == 1
        assert response.truncated is False
        assert len(response.events) == 1
        assert response.events[0].kind == "error"
        assert "ghost" in response.events[0].text


class TestTimelineCache:
    """Tests for the per-session timeline cache."""

    def test_builds_and_persists(self, tmp_path, cache_dir):
        path = write_jsonl(tmp_path / "abc.jsonl", example_records("abc"))
        cache = TimelineCache(cache_dir)

        response = asyncio.run(cache.get("abc", path))

        assert response.summary.tool_calls == 1
        assert len(response.events) == 3
        stored = json.loads(cache.path_for("abc").read_text())
        assert stored["file_size"] == path.stat().st_size
        assert stored["file_mtime_ns"] == path.stat().st_mtime_ns

    def test_cache_hit_skips_extraction(self, tmp_path, cache_dir):
        path = write_jsonl(tmp_path / "abc.jsonl", example_records("abc"))
        cache = TimelineCache(cache_dir)
        first = asyncio.run(cache.get("abc", path))

        with patch("codex_session_index.timeline.extract_timeline") as extract:
            second = asyncio.run(cache.get("abc", path))

        extract.assert_not_called()
        assert second.model_dump() == first.model_dump()

    def test_changed_file_is_extracted_again(self, tmp_path, cache_dir):
        path = write_jsonl(tmp_path / "abc.jsonl", example_records("abc"))
        cache = TimelineCache(cache_dir)
        asyncio.run(cache.get("abc", path))

        with open(path, "a") as f:
            f.write(json.dumps(message("assistant", "Retrying.", "2025-01-15T10:00:04Z")) + "\n")

        response = asyncio.run(cache.get("abc", path))
        assert response.events[-1].text == "Retrying."
        assert response.summary.messages == 2

    def test_cache_write_failure_still_returns_timeline(self, tmp_path, cache_dir):
        """A timeline that cannot be cached is still returned in full."""
        path = write_jsonl(tmp_path / "abc.jsonl", example_records("abc"))
        with patch(
            "codex_session_index.timeline.write_model", side_effect=OSError(28, "No space left")
        ):
            response = asyncio.run(TimelineCache(cache_dir).get("abc", path))

        assert [e.kind for e in response.events] == ["user", "tool_call", "tool_output"]
        assert not TimelineCache(cache_dir).path_for("abc").exists()

    def test_given_summary_is_used(self, tmp_path, cache_dir):
        path = write_jsonl(tmp_path / "abc.jsonl", example_records("abc"))
        summary = SessionSummary(id="abc", file=str(path), messages=42)
        response = asyncio.run(TimelineCache(cache_dir).get("abc", path, summary))
        assert response.summary.messages == 42

    def test_session_id_is_quoted(self, cache_dir):
        path = TimelineCache(cache_dir).path_for("a/b c")
        assert path.name == "a%2Fb%20c.json"
        assert path.parent == cache_dir / "session"
