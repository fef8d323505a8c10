"""Tests for src/search.py: ripgrep-backed transcript search."""

import subprocess
from datetime import date
from pathlib import Path
from unittest.mock import patch

from transcripts.config import SearchConfig
from transcripts.search import (
    MessageType,
    SearchOptions,
    SearchResult,
    build_pattern,
    find_recent_files,
    format_results,
    parse_ripgrep_output,
    run_ripgrep,
    run_search,
    search_transcripts,
)


def _transcript(root: Path, month: str, name: str) -> Path:
    folder = root / month
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    path.write_text("👤 deploy the api\n🤖 Deployed.\n", encoding="utf-8")
    return path


class TestBuildPattern:
    def test_keywords_escaped_and_ored(self):
        assert build_pattern(["a.b", "c+"]) == r"a\.b|c\+"

    def test_user_anchor(self):
        assert build_pattern(["deploy"], MessageType.USER) == "^👤.*(?:deploy)"

    def test_assistant_anchor(self):
        assert build_pattern(["x", "y"], MessageType.ASSISTANT) == "^🤖.*(?:x|y)"


class TestFindRecentFiles:
    def test_filters_by_month_and_day(self, tmp_path):
        old_month = _transcript(tmp_path, "2024-12", "2024-12-30T10-00-00-claude.txt")
        early = _transcript(tmp_path, "2025-01", "2025-01-09T10-00-00-claude.txt")
        recent = _transcript(tmp_path, "2025-01", "2025-01-20T10-00-00-codex.txt")
        newest = _transcript(tmp_path, "2025-02", "2025-02-01T10-00-00-opencode.txt")
        (tmp_path / "2025-02" / "notes.md").write_text("x")

        files = find_recent_files(tmp_path, date(2025, 1, 10))

        assert files == [newest, recent]
        assert old_month not in files
        assert early not in files

    def test_missing_directory(self, tmp_path):
        assert find_recent_files(tmp_path / "nope", date(2025, 1, 1)) == []


class TestRipgrep:
    def test_command_line(self, tmp_path):
        files = [tmp_path / f"2025-01-{i:02d}.txt" for i in range(1, 3)]
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="")
        with patch("transcripts.search.subprocess.run", return_value=completed) as run:
            assert run_ripgrep("deploy", files, 2) == ""
        cmd = run.call_args.args[0]
        assert cmd[:8] == ["rg", "-i", "-n", "-C2", "-e", "deploy", "--max-count", "3"]
        assert cmd[8:] == [str(f) for f in files]

    def test_file_cap(self, tmp_path):
        files = [tmp_path / f"{i}.txt" for i in range(150)]
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        with patch("transcripts.search.subprocess.run", return_value=completed) as run:
            run_ripgrep("x", files, 0)
        assert len(run.call_args.args[0]) == 8 + 100

    def test_missing_rg(self, tmp_path):
        with patch("transcripts.search.subprocess.run", side_effect=FileNotFoundError):
            assert run_ripgrep("x", [tmp_path / "a.txt"], 2) == ""

    def test_parse_output_groups_by_file(self):
        output = "\n".join(
            [
                "/t/2025-01/2025-01-20T10-00-00-claude.txt-3-👤 before",
                "/t/2025-01/2025-01-20T10-00-00-claude.txt:4:👤 deploy the api",
                "--",
                "/t/2025-01/2025-01-21T10-00-00-codex.txt:9:🤖 Deployed.",
                "",
            ]
        )
        results = parse_ripgrep_output(output, limit=20)
        assert [r.date for r in results] == ["2025-01-20", "2025-01-21"]
        assert results[0].matches == ["👤 before", "👤 deploy the api"]

    def test_parse_output_limit(self):
        output = "\n".join(f"/t/2025-01-{i:02d}.txt:1:x" for i in range(1, 6))
        assert len(parse_ripgrep_output(output, limit=2)) == 2


class TestSearchTranscripts:
    def test_end_to_end_with_mocked_rg(self, tmp_path):
        path = _transcript(tmp_path, "2025-01", "2025-01-20T10-00-00-claude.txt")
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout=f"{path}:1:👤 deploy the api\n", stderr=""
        )
        options = SearchOptions(keywords=["deploy"], days=30, message_type=MessageType.USER)
        with patch("transcripts.search.subprocess.run", return_value=completed) as run:
            results = search_transcripts(options, tmp_path, today=date(2025, 2, 1))

        assert run.call_args.args[0][5] == "^👤.*(?:deploy)"
        assert results == [
            SearchResult(file=str(path), date="2025-01-20", matches=["👤 deploy the api"])
        ]

    def test_no_recent_files_skips_rg(self, tmp_path):
        _transcript(tmp_path, "2020-01", "2020-01-01T00-00-00-claude.txt")
        with patch("transcripts.search.subprocess.run") as run:
            results = search_transcripts(
                SearchOptions(keywords=["x"]), tmp_path, today=date(2025, 1, 1)
            )
        assert results == []
        run.assert_not_called()


class TestFormatResults:
    def test_no_matches(self):
        assert format_results([]) == "No matches found."

    def test_grouped_output(self):
        results = [
            SearchResult(file="/t/a.txt", date="2025-01-20", matches=["👤 one", "🤖 two"]),
            SearchResult(file="/t/b.txt", date="2025-01-21", matches=["👤 three"]),
        ]
        assert format_results(results) == (
            "2025-01-20 /t/a.txt\n  👤 one\n  🤖 two\n\n2025-01-21 /t/b.txt\n  👤 three"
        )


class TestRunSearch:
    def test_requires_keywords(self, tmp_path):
        config = SearchConfig(transcripts_dir=str(tmp_path))
        assert run_search([], config) == "Error: keywords array is required"

    def test_rejects_unknown_message_type(self, tmp_path):
        config = SearchConfig(transcripts_dir=str(tmp_path))
        assert run_search(["x"], config, message_type="tool").startswith("Error:")

    def test_empty_directory(self, tmp_path):
        config = SearchConfig(transcripts_dir=str(tmp_path))
        assert run_search(["x"], config) == "No matches found."
