"""Tests for the Claude Code streaming adapter."""

import json

import pytest

from transcripts.formatters.transcript import render_transcript
from transcripts.parsers.claude import ClaudeAdapter
from transcripts.parsers.models import (
    AssistantTurn,
    Metadata,
    ModelChange,
    Notification,
    Summary,
    ToolOutcome,
    UserTurn,
)


def _line(record: dict) -> str:
    return json.dumps(record)


def _user(text, ts="2025-01-01T00:00:00Z", **extra) -> str:
    record = {
        "type": "user",
        "sessionId": "sess-1",
        "cwd": "/home/dev/project",
        "timestamp": ts,
        "version": "1.0.42",
        "message": {"role": "user", "content": text},
    }
    record.update(extra)
    return _line(record)


def _assistant(content, ts="2025-01-01T00:00:05Z", model=None, usage=None) -> str:
    message = {"role": "assistant", "content": content}
    if model is not None:
        message["model"] = model
    if usage is not None:
        message["usage"] = usage
    return _line({"type": "assistant", "sessionId": "sess-1", "timestamp": ts, "message": message})


def _tool_use(tool_id: str, name: str, tool_input: dict) -> dict:
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}


def _tool_result(tool_id: str, ts="2025-01-01T00:00:06Z", is_error=None) -> str:
    block = {"type": "tool_result", "tool_use_id": tool_id, "content": "output"}
    if is_error is not None:
        block["is_error"] = is_error
    return _line(
        {
            "type": "user",
            "sessionId": "sess-1",
            "timestamp": ts,
            "message": {"role": "user", "content": [block]},
        }
    )


@pytest.fixture
def adapter() -> ClaudeAdapter:
    return ClaudeAdapter()


class TestMetadata:
    def test_metadata_emitted_first_and_once(self, adapter: ClaudeAdapter) -> None:
        first = adapter.consume_record(_user("hello", gitBranch="main"))
        second = adapter.consume_record(_user("again"))

        assert isinstance(first[0], Metadata)
        assert first[0].session_id == "sess-1"
        assert first[0].project_path == "/home/dev/project"
        assert first[0].tool_version == "1.0.42"
        assert first[0].branch == "main"
        assert not any(isinstance(e, Metadata) for e in second)

    def test_leading_summary_record_does_not_blank_metadata(self, adapter: ClaudeAdapter) -> None:
        assert adapter.consume_record(_line({"type": "summary", "summary": "Earlier work"})) == []
        events = adapter.consume_record(_user("hello"))
        assert isinstance(events[0], Metadata)
        assert events[0].session_id == "sess-1"


class TestUserRecords:
    def test_string_content_becomes_turn(self, adapter: ClaudeAdapter) -> None:
        events = adapter.consume_record(_user("  find config  "))
        turns = [e for e in events if isinstance(e, UserTurn)]
        assert [t.text for t in turns] == ["find config"]
        assert adapter.stats.user_turns == 1
        assert adapter.stats.user_words == 2

    def test_control_text_suppressed(self, adapter: ClaudeAdapter) -> None:
        events = adapter.consume_record(_user("<command-name>/clear</command-name>"))
        assert not any(isinstance(e, UserTurn) for e in events)
        assert adapter.stats.user_turns == 0

    def test_is_meta_skipped(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_user("first"))
        events = adapter.consume_record(_user("Caveat: injected", isMeta=True))
        assert events == []

    def test_list_content_counts_one_turn_per_record(self, adapter: ClaudeAdapter) -> None:
        content = [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}]
        events = adapter.consume_record(_user(content))
        assert [e.text for e in events if isinstance(e, UserTurn)] == ["one", "two"]
        assert adapter.stats.user_turns == 1


class TestToolCorrelation:
    def test_request_then_result_yields_one_outcome(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_user("go"))
        adapter.consume_record(
            _assistant([_tool_use("t1", "Bash", {"command": "ls -la"})])
        )
        events = adapter.consume_record(_tool_result("t1"))

        outcomes = [e for e in events if isinstance(e, ToolOutcome)]
        assert len(outcomes) == 1
        assert outcomes[0].name == "Bash"
        assert outcomes[0].rendered_args == "ls -la"
        assert outcomes[0].succeeded is True
        assert adapter.pending_calls == 0

    def test_request_without_result_leaves_no_residue(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_user("go"))
        events = adapter.consume_record(
            _assistant([_tool_use("t1", "Bash", {"command": "ls"})])
        )
        assert not any(isinstance(e, ToolOutcome) for e in events)
        assert adapter.pending_calls == 1

        summary = adapter.finalize()
        assert adapter.pending_calls == 0
        assert summary is not None
        assert summary.tool_calls == 0

    def test_unknown_result_id_is_ignored(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_user("go"))
        events = adapter.consume_record(_tool_result("missing"))
        assert not any(isinstance(e, ToolOutcome) for e in events)
        assert adapter.stats.tool_calls == 0

    def test_is_error_marks_failure(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_assistant([_tool_use("t1", "Bash", {"command": "false"})]))
        events = adapter.consume_record(_tool_result("t1", is_error=True))
        assert events[-1].succeeded is False
        assert adapter.stats.tool_failures == 1

    def test_repeated_reads_count_once(self, adapter: ClaudeAdapter) -> None:
        for i in range(3):
            adapter.consume_record(
                _assistant([_tool_use(f"r{i}", "Read", {"file_path": "/a.py"})])
            )
            adapter.consume_record(_tool_result(f"r{i}"))
        assert adapter.stats.tool_calls == 3
        assert len(adapter.stats.files_read) == 1

    def test_failed_edit_not_tracked(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_assistant([_tool_use("e1", "Edit", {"file_path": "/a.py"})]))
        adapter.consume_record(_tool_result("e1", is_error=True))
        adapter.consume_record(_assistant([_tool_use("e2", "MultiEdit", {"file_path": "/b.py"})]))
        adapter.consume_record(_tool_result("e2"))
        assert adapter.stats.files_edited == {"/b.py"}


class TestAssistantRecords:
    def test_model_change_rules(self, adapter: ClaudeAdapter) -> None:
        a = adapter.consume_record(
            _assistant([{"type": "text", "text": "hi"}], model="claude-opus-4-5-20251101")
        )
        repeat = adapter.consume_record(
            _assistant([{"type": "text", "text": "hi"}], model="claude-opus-4-5-20251101")
        )
        synthetic = adapter.consume_record(
            _assistant([{"type": "text", "text": "x"}], model="<synthetic>")
        )
        b = adapter.consume_record(
            _assistant([{"type": "text", "text": "hi"}], model="claude-sonnet-4-5-20250929")
        )

        assert [e.short_name for e in a if isinstance(e, ModelChange)] == ["opus-4.5"]
        assert not any(isinstance(e, ModelChange) for e in repeat)
        assert not any(isinstance(e, ModelChange) for e in synthetic)
        assert [e.short_name for e in b if isinstance(e, ModelChange)] == ["sonnet-4.5"]

    def test_thinking_dropped_and_usage_folded(self, adapter: ClaudeAdapter) -> None:
        events = adapter.consume_record(
            _assistant(
                [
                    {"type": "thinking", "thinking": "secret"},
                    {"type": "text", "text": "answer"},
                ],
                usage={
                    "input_tokens": 10,
                    "output_tokens": 5,
                    "cache_read_input_tokens": 1000,
                    "cache_creation_input_tokens": 200,
                },
            )
        )
        assert [e.text for e in events if isinstance(e, AssistantTurn)] == ["answer"]
        assert adapter.stats.input_tokens == 10
        assert adapter.stats.output_tokens == 5
        assert adapter.stats.cache_read_tokens == 1000
        assert adapter.stats.cache_write_tokens == 200


class TestQueueOperation:
    def test_summary_element_preferred(self, adapter: ClaudeAdapter) -> None:
        record = {
            "type": "queue-operation",
            "timestamp": "2025-01-01T00:00:00Z",
            "content": "<task><summary>Background build finished</summary></task>",
        }
        events = adapter.consume_record(_line(record))
        notes = [e for e in events if isinstance(e, Notification)]
        assert notes[0].text == "Background build finished"

    def test_falls_back_to_first_hundred_chars(self, adapter: ClaudeAdapter) -> None:
        record = {"type": "queue-operation", "content": "x" * 250}
        events = adapter.consume_record(_line(record))
        notes = [e for e in events if isinstance(e, Notification)]
        assert notes[0].text == "x" * 100


class TestRobustness:
    def test_blank_and_malformed_lines(self, adapter: ClaudeAdapter) -> None:
        assert adapter.consume_record("") == []
        assert adapter.consume_record("   \n") == []
        assert adapter.consume_record("{not json") == []
        assert adapter.consume_record("[1, 2]") == []
        assert len(adapter.parse_errors) == 2

    def test_no_turns_no_summary(self, adapter: ClaudeAdapter) -> None:
        adapter.consume_record(_user("<system-reminder>x</system-reminder>"))
        assert adapter.finalize() is None


class TestRoundTrip:
    def test_complete_session_renders_exactly(self) -> None:
        lines = [
            _user("find config", ts="2025-01-01T00:00:00Z", gitBranch="main"),
            _assistant(
                [_tool_use("t1", "Glob", {"pattern": "**/config.*"})],
                ts="2025-01-01T00:00:10Z",
                usage={"input_tokens": 100, "output_tokens": 20},
            ),
            _tool_result("t1", ts="2025-01-01T00:00:11Z"),
            _assistant(
                [{"type": "text", "text": "Found it"}],
                ts="2025-01-01T00:01:05Z",
                usage={"input_tokens": 1500, "output_tokens": 5},
            ),
        ]
        events = list(ClaudeAdapter().convert(lines))
        assert isinstance(events[-1], Summary)

        expected = (
            "📋 Session: sess-1\n"
            "📋 Project: /home/dev/project\n"
            "📋 Started: 2025-01-01T00:00:00Z\n"
            "📋 Version: 1.0.42\n"
            "📋 Branch: main\n"
            "\n"
            "👤 find config\n"
            '✅ Glob: pattern="**/config.*"\n'
            "🤖 Found it\n"
            "\n"
            "📋 --- Summary ---\n"
            "📋 Duration: 1m\n"
            "📋 Messages: 1 user, 1 assistant\n"
            "📋 Tool calls: 1 total, 0 failed\n"
            "📋 Tokens: 1.6K in, 25 out\n"
        )
        assert render_transcript(events) == expected
