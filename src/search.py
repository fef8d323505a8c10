"""Keyword search over rendered transcripts using ripgrep."""

from __future__ import annotations

import logging
import re
import subprocess
from datetime import date, timedelta
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from transcripts.config import SearchConfig
from transcripts.formatters.transcript import Tag

logger = logging.getLogger(__name__)

MAX_FILES = 100
MAX_MATCHES_PER_FILE = 3
RG_TIMEOUT = 60

MONTH_DIR_RE = re.compile(r"^\d{4}-\d{2}$")
RG_LINE_RE = re.compile(r"^(.+\.txt)[:\-](\d+)[:\-](.*)$")


class MessageType(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    ALL = "all"


class SearchOptions(BaseModel):
    """Parameters of one search."""

    keywords: list[str]
    days: int = 90
    limit: int = 20
    context_lines: int = 2
    message_type: MessageType = MessageType.ALL


class SearchResult(BaseModel):
    """Matching lines (with context) from one transcript."""

    file: str
    date: str
    matches: list[str] = Field(default_factory=list)


def build_pattern(keywords: list[str], message_type: MessageType = MessageType.ALL) -> str:
    """OR the escaped keywords, anchored to a speaker tag when filtering."""
    pattern = "|".join(re.escape(k) for k in keywords)
    if message_type == MessageType.USER:
        return f"^{Tag.USER}.*(?:{pattern})"
    if message_type == MessageType.ASSISTANT:
        return f"^{Tag.ASSISTANT}.*(?:{pattern})"
    return pattern


def find_recent_files(directory: Path, cutoff: date) -> list[Path]:
    """Transcripts dated on or after ``cutoff``, most recent first.

    Month folders (``YYYY-MM``) before the cutoff month are not descended
    into; files must start with a ``YYYY-MM-DD`` date at or after the cutoff.
    """
    cutoff_day = cutoff.isoformat()
    cutoff_month = cutoff_day[:7]
    results: list[Path] = []

    def walk(current: Path) -> None:
        try:
            entries = list(current.iterdir())
        except OSError:
            return
        for entry in entries:
            if entry.is_dir():
                if MONTH_DIR_RE.match(entry.name) and entry.name < cutoff_month:
                    continue
                walk(entry)
            elif entry.name.endswith(".txt") and entry.name[:10] >= cutoff_day:
                results.append(entry)

    walk(directory)
    return sorted(results, key=str, reverse=True)


def run_ripgrep(pattern: str, files: list[Path], context_lines: int) -> str:
    """Run ``rg`` over ``files``; empty output when rg is unavailable."""
    cmd = [
        "rg",
        "-i",
        "-n",
        f"-C{context_lines}",
        "-e",
        pattern,
        "--max-count",
        str(MAX_MATCHES_PER_FILE),
        *(str(f) for f in files[:MAX_FILES]),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=RG_TIMEOUT)
    except FileNotFoundError:
        logger.warning("ripgrep (rg) not found on PATH; search returns no results")
        return ""
    except subprocess.TimeoutExpired:
        logger.warning("ripgrep timed out after %ss", RG_TIMEOUT)
        return ""
    # rg exits 1 when nothing matched
    if result.returncode > 1:
        logger.debug("rg exited %d: %s", result.returncode, result.stderr.strip())
    return result.stdout


def parse_ripgrep_output(output: str, limit: int) -> list[SearchResult]:
    """Group ``path:line:content`` (and ``path-line-content``) lines by file."""
    by_file: dict[str, list[str]] = {}
    for line in output.split("\n"):
        if line == "--":
            continue
        match = RG_LINE_RE.match(line)
        if match:
            by_file.setdefault(match.group(1), []).append(match.group(3))

    results: list[SearchResult] = []
    for file, matches in by_file.items():
        results.append(SearchResult(file=file, date=Path(file).name[:10], matches=matches))
        if len(results) >= limit:
            break
    return results


def search_transcripts(
    options: SearchOptions,
    transcripts_dir: Path,
    today: date | None = None,
) -> list[SearchResult]:
    """Search recent transcripts for any of the keywords."""
    if not options.keywords:
        return []
    cutoff = (today or date.today()) - timedelta(days=options.days)
    files = find_recent_files(transcripts_dir, cutoff)
    if not files:
        return []
    pattern = build_pattern(options.keywords, options.message_type)
    output = run_ripgrep(pattern, files, options.context_lines)
    return parse_ripgrep_output(output, options.limit)


def format_results(results: list[SearchResult]) -> str:
    if not results:
        return "No matches found."
    output = ""
    for result in results:
        output += f"\n{result.date} {result.file}\n"
        for line in result.matches:
            output += f"  {line}\n"
    return output.strip()


def run_search(
    keywords: list[str],
    config: SearchConfig,
    *,
    days: int | None = None,
    limit: int | None = None,
    context_lines: int | None = None,
    message_type: str = "all",
) -> str:
    """Search with config defaults for unset options and format the results."""
    if not keywords:
        return "Error: keywords array is required"
    try:
        kind = MessageType(message_type)
    except ValueError:
        return f"Error: unknown message_type {message_type!r}"

    options = SearchOptions(
        keywords=keywords,
        days=days if days is not None else config.days,
        limit=limit if limit is not None else config.limit,
        context_lines=context_lines if context_lines is not None else config.context_lines,
        message_type=kind,
    )
    return format_results(search_transcripts(options, config.path))
