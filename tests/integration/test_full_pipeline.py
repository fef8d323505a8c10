"""Full-pipeline integration tests: raw logs -> dated transcripts -> statistics.

Builds one session per source on disk, runs the ``all`` driver over them and
summarizes the resulting transcript tree.
"""

import json
from pathlib import Path

import pytest

from transcripts.config import OutputConfig, SourcesConfig, TranscriptsConfig
from transcripts.core import process_all
from transcripts.errors import REPORT_FILENAME, load_report
from transcripts.summarize import collect_stats, render_table

# 2025-01-01T00:00:00Z
T0 = 1735689600000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def _write_jsonl(path: Path, records: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")


def _claude_session(root: Path) -> None:
    base = {"sessionId": "c-1", "cwd": "/work/app", "version": "2.0.0"}
    _write_jsonl(
        root / "-work-app" / "c-1.jsonl",
        [
            {
                **base,
                "type": "user",
                "timestamp": "2025-01-02T03:04:05Z",
                "message": {"role": "user", "content": "list the files"},
            },
            {
                **base,
                "type": "assistant",
                "timestamp": "2025-01-02T03:04:10Z",
                "message": {
                    "role": "assistant",
                    "content": [
                        {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}}
                    ],
                    "usage": {"input_tokens": 1200, "output_tokens": 30},
                },
            },
            {
                **base,
                "type": "user",
                "timestamp": "2025-01-02T03:04:11Z",
                "message": {
                    "role": "user",
                    "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "a.py"}],
                },
            },
            {
                **base,
                "type": "assistant",
                "timestamp": "2025-01-02T03:06:05Z",
                "message": {"role": "assistant", "content": [{"type": "text", "text": "One file."}]},
            },
        ],
    )


def _codex_session(root: Path) -> None:
    def record(record_type: str, payload: dict, ts: str) -> dict:
        return {"timestamp": ts, "type": record_type, "payload": payload}

    _write_jsonl(
        root / "2025" / "03" / "01" / "rollout-2025-03-01T10-00-00-0199-abc.jsonl",
        [
            record(
                "session_meta",
                {"id": "0199-abc", "cwd": "/work/repo", "cli_version": "0.46.0"},
                "2025-03-01T10:00:00.000Z",
            ),
            record(
                "event_msg",
                {"type": "user_message", "message": "run the tests"},
                "2025-03-01T10:00:01.000Z",
            ),
            record(
                "response_item",
                {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": "All green."}],
                },
                "2025-03-01T10:05:00.000Z",
            ),
        ],
    )


def _opencode_session(root: Path) -> None:
    _write_json(
        root / "session" / "proj1" / "ses_abc.json",
        {"id": "ses_abc", "directory": "/work/oc", "title": "Demo", "time": {"created": T0}},
    )
    _write_json(
        root / "message" / "ses_abc" / "msg_1.json",
        {"id": "msg_1", "role": "user", "time": {"created": T0 + 1_000}},
    )
    _write_json(
        root / "part" / "msg_1" / "prt_1.json",
        {"id": "prt_1", "type": "text", "text": "hello there"},
    )


@pytest.fixture
def config(tmp_path: Path) -> TranscriptsConfig:
    claude, codex, opencode = tmp_path / "claude", tmp_path / "codex", tmp_path / "opencode"
    _claude_session(claude)
    _codex_session(codex)
    _opencode_session(opencode)
    return TranscriptsConfig(
        sources=SourcesConfig(claude=str(claude), codex=str(codex), opencode=str(opencode)),
        output=OutputConfig(directory=str(tmp_path / "out")),
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestFullPipeline:
    def test_every_source_lands_in_its_month(self, config: TranscriptsConfig) -> None:
        out = config.output.path
        report = process_all(config, out)

        assert report.success
        assert report.processed == {"claude": 1, "codex": 1, "opencode": 1}
        assert sorted(p.relative_to(out).as_posix() for p in out.rglob("*.txt")) == [
            "2025-01/2025-01-01T00-00-00-opencode.txt",
            "2025-01/2025-01-02T03-04-05-claude.txt",
            "2025-03/2025-03-01T10-00-00-codex.txt",
        ]

        claude = (out / "2025-01" / "2025-01-02T03-04-05-claude.txt").read_text(encoding="utf-8")
        assert "👤 list the files\n✅ Bash: ls\n🤖 One file.\n" in claude
        codex = (out / "2025-03" / "2025-03-01T10-00-00-codex.txt").read_text(encoding="utf-8")
        assert "📋 CLI: codex 0.46.0\n" in codex

    def test_report_saved_beside_transcripts(self, config: TranscriptsConfig) -> None:
        out = config.output.path
        process_all(config, out)
        assert (out / REPORT_FILENAME).exists()
        saved = load_report(out)
        assert saved is not None
        assert sorted(saved.sources_completed) == ["claude", "codex", "opencode"]

    def test_second_run_is_up_to_date(self, config: TranscriptsConfig) -> None:
        out = config.output.path
        process_all(config, out)
        report = process_all(config, out)
        assert report.processed == {}
        assert report.up_to_date == {"claude": 1, "codex": 1, "opencode": 1}

    def test_summarize_groups_by_month(self, config: TranscriptsConfig) -> None:
        out = config.output.path
        process_all(config, out)

        stats = collect_stats(out)
        assert sorted(stats) == ["2025-01", "2025-03"]
        assert stats["2025-01"].sessions == 2
        assert stats["2025-01"].user_messages == 2
        assert stats["2025-01"].bash_total == 1
        assert stats["2025-01"].input_tokens == 1200
        assert stats["2025-03"].sessions == 1
        assert stats["2025-03"].duration_minutes == 5

        table = render_table(stats)
        assert "| 2025-01 | 2 |" in table
        assert "| **TOTAL** | 3 |" in table
