"""Batch conversion pipeline: discover session logs, convert, write transcripts."""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import tempfile
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path

from transcripts.config import TranscriptsConfig
from transcripts.errors import ConversionReport, StorageUnavailable, save_report
from transcripts.formatters.transcript import render_events
from transcripts.parsers import (
    ClaudeAdapter,
    CodexAdapter,
    OpenCodeAdapter,
    OpenCodeStorage,
    Source,
    StreamingAdapter,
)
from transcripts.parsers.stats import parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
ROLLOUT_NAME_RE = re.compile(
    r"rollout-(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})-(.+)\.jsonl$"
)
GIT_TIMEOUT = 60

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class ConvertedSession:
    """Rendered transcript text plus whether the session had any turns."""

    text: str
    has_turns: bool


def create_adapter(source: Source | str) -> StreamingAdapter:
    """Return a fresh streaming adapter for a line-oriented source.

    Raises:
        ValueError: If the source is not a streaming source.
    """
    source = Source(source)
    if source == Source.CLAUDE:
        return ClaudeAdapter()
    if source == Source.CODEX:
        return CodexAdapter()
    raise ValueError(f"{source} is not a line-oriented source")


def stream_transcript(lines: Iterable[str], source: Source | str) -> Iterator[str]:
    """Convert log lines to rendered transcript chunks as they arrive."""
    adapter = create_adapter(source)
    yield from render_events(adapter.convert(lines))


def convert_lines(lines: Iterable[str], source: Source | str) -> ConvertedSession:
    """Convert a whole streaming log in memory."""
    adapter = create_adapter(source)
    text = "".join(render_events(adapter.convert(lines)))
    if adapter.parse_errors:
        logger.debug("%d unparseable record(s) skipped", len(adapter.parse_errors))
    return ConvertedSession(text=text, has_turns=adapter.stats.has_turns)


def convert_file(path: Path, source: Source | str) -> ConvertedSession:
    """Convert one JSONL session file.

    Undecodable bytes are replaced so a damaged line is skipped like any
    other malformed record instead of failing the whole file.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        return convert_lines(f, source)


def convert_opencode_session(storage: OpenCodeStorage, session_id: str) -> ConvertedSession:
    """Join and convert one OpenCode session.

    Raises:
        StorageUnavailable: If the session cannot be joined.
    """
    adapter = OpenCodeAdapter(storage.load_session(session_id))
    text = "".join(render_events(adapter.convert()))
    return ConvertedSession(text=text, has_turns=adapter.stats.has_turns)


# --- Discovery -------------------------------------------------------------


def discover_session_files(source: Source | str, input_dir: Path) -> list[Path]:
    """Find the session logs of a line-oriented source under ``input_dir``.

    For OpenCode use ``OpenCodeStorage.list_session_ids`` instead.
    """
    source = Source(source)
    if not input_dir.is_dir():
        return []
    if source == Source.CLAUDE:
        return sorted(p for p in input_dir.rglob("*.jsonl") if ".bak" not in p.name and p.is_file())
    if source == Source.CODEX:
        return sorted(p for p in input_dir.rglob("rollout-*.jsonl") if p.is_file())
    raise ValueError(f"{source} sessions are not stored as files")


# --- Output paths ----------------------------------------------------------


def _date_parts(moment: datetime | None) -> tuple[str, str]:
    if moment is None:
        return UNKNOWN, UNKNOWN
    moment = moment.astimezone(timezone.utc) if moment.tzinfo else moment
    return moment.strftime("%Y-%m"), moment.strftime("%Y-%m-%dT%H-%M-%S")


def first_record_timestamp(path: Path) -> datetime | None:
    """Timestamp of the first record in a JSONL file that carries one."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict) and isinstance(record.get("timestamp"), str):
                    try:
                        return parse_timestamp(record["timestamp"])
                    except ValueError:
                        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Could not read %s: %s", path, e)
    return None


def rollout_timestamp(path: Path) -> datetime | None:
    """Start time encoded in a Codex rollout file name."""
    match = ROLLOUT_NAME_RE.search(path.name)
    if not match:
        return None
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def derive_output_path(output_dir: Path, source: Source | str, started: datetime | None) -> Path:
    """``<output>/<YYYY-MM>/<YYYY-MM-DDTHH-MM-SS>-<source>.txt``."""
    folder, stamp = _date_parts(started)
    return output_dir / folder / f"{stamp}-{Source(source)}.txt"


def is_up_to_date(input_path: Path, output_path: Path) -> bool:
    """True when the output exists and is at least as new as the input."""
    try:
        return output_path.stat().st_mtime >= input_path.stat().st_mtime
    except OSError:
        return False


def _atomic_write(path: Path, content: str) -> None:
    """Write content to a file atomically via temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


# --- Batch processing ------------------------------------------------------


def process_batch(
    source: Source | str,
    input_dir: Path,
    output_dir: Path,
    *,
    force: bool = False,
    report: ConversionReport | None = None,
    progress: ProgressCallback | None = None,
) -> ConversionReport:
    """Convert every session of one source under ``input_dir``.

    Args:
        source: Which assistant wrote the logs.
        input_dir: Log directory (or OpenCode storage directory).
        output_dir: Transcript root.
        force: Regenerate transcripts even when they are up to date.
        report: Report to add to; a new one is created when omitted.
        progress: Optional callback for progress messages.

    Returns:
        The report, updated with this source's counts and errors.
    """
    source = Source(source)
    if report is None:
        report = ConversionReport()

    if source == Source.OPENCODE:
        _process_opencode(input_dir, output_dir, force=force, report=report, progress=progress)
    else:
        _process_files(source, input_dir, output_dir, force=force, report=report, progress=progress)

    report.mark_source_complete(source)
    return report


def _process_files(
    source: Source,
    input_dir: Path,
    output_dir: Path,
    *,
    force: bool,
    report: ConversionReport,
    progress: ProgressCallback | None,
) -> None:
    files = discover_session_files(source, input_dir)
    if progress:
        progress(f"Found {len(files)} session files")

    for path in files:
        try:
            if path.stat().st_size == 0:
                report.count_skipped(source)
                continue

            started = (
                rollout_timestamp(path)
                if source == Source.CODEX
                else first_record_timestamp(path)
            )
            out_path = derive_output_path(output_dir, source, started)
            if not force and is_up_to_date(path, out_path):
                report.count_up_to_date(source)
                continue

            converted = convert_file(path, source)
            if not converted.has_turns:
                report.count_skipped(source)
                continue

            _atomic_write(out_path, converted.text)
            report.count_processed(source, out_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", path, e)
            report.add_error(source, str(e), session=str(path), error_type="io")
            report.count_skipped(source)


def _process_opencode(
    storage_dir: Path,
    output_dir: Path,
    *,
    force: bool,
    report: ConversionReport,
    progress: ProgressCallback | None,
) -> None:
    storage = OpenCodeStorage(storage_dir)
    session_ids = storage.list_session_ids()
    if progress:
        progress(f"Found {len(session_ids)} sessions")

    for session_id in session_ids:
        try:
            data = storage.load_session(session_id)
            started = datetime.fromtimestamp(data.session.time.created / 1000, tz=timezone.utc)
            out_path = derive_output_path(output_dir, Source.OPENCODE, started)
            if not force and is_up_to_date(storage.message_dir(session_id), out_path):
                report.count_up_to_date(Source.OPENCODE)
                continue

            adapter = OpenCodeAdapter(data)
            text = "".join(render_events(adapter.convert()))
            if not adapter.stats.has_turns:
                report.count_skipped(Source.OPENCODE)
                continue

            _atomic_write(out_path, text)
            report.count_processed(Source.OPENCODE, out_path)
        except StorageUnavailable as e:
            logger.warning("Skipping session %s: %s", session_id, e)
            report.add_error(
                Source.OPENCODE, str(e), session=session_id, error_type="storage_unavailable"
            )
            report.count_skipped(Source.OPENCODE)
        except OSError as e:
            logger.warning("Skipping session %s: %s", session_id, e)
            report.add_error(Source.OPENCODE, str(e), session=session_id, error_type="io")
            report.count_skipped(Source.OPENCODE)


def available_sources(config: TranscriptsConfig) -> dict[Source, Path]:
    """Configured source directories that exist on disk."""
    return {
        Source(name): path
        for name, path in config.sources.directories().items()
        if path.is_dir()
    }


def process_all(
    config: TranscriptsConfig,
    output_dir: Path,
    *,
    force: bool = False,
    commit: bool = False,
    progress: ProgressCallback | None = None,
) -> ConversionReport:
    """Convert every configured source that exists, then save the run report."""
    report = ConversionReport()
    sources = available_sources(config)

    if not sources:
        report.add_error("all", "No session directories found", recoverable=False)

    for source, input_dir in sources.items():
        if progress:
            progress(f"Processing {source} ({input_dir})...")
        process_batch(source, input_dir, output_dir, force=force, report=report, progress=progress)
        if progress:
            progress(report.source_line(source))

    if commit and sources:
        message = commit_changes(output_dir)
        if progress:
            progress(message)

    report.finish()
    save_report(report, output_dir)
    return report


# --- Git -------------------------------------------------------------------


def _git(args: list[str], cwd: Path) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except FileNotFoundError:
        logger.warning("git not found on PATH")
        return None
    except subprocess.TimeoutExpired:
        logger.warning("git %s timed out after %ss", args[0], GIT_TIMEOUT)
        return None


def commit_changes(directory: Path, today: date | None = None) -> str:
    """Stage and commit everything under ``directory`` if it is a git repository.

    Returns:
        A one-line description of what happened.
    """
    check = _git(["rev-parse", "--git-dir"], directory)
    if check is None or check.returncode != 0:
        return "--commit: not a git repository, skipping"

    status = _git(["status", "--porcelain"], directory)
    if status is None or not status.stdout.strip():
        return "--commit: no changes to commit"

    add = _git(["add", "-A"], directory)
    if add is None or add.returncode != 0:
        return "--commit: git add failed"

    stamp = (today or date.today()).isoformat()
    result = _git(["commit", "-m", f"Transcripts update {stamp}"], directory)
    if result is None or result.returncode != 0:
        err_text = result.stderr.strip() if result and result.stderr else ""
        logger.warning("git commit failed: %s", err_text)
        return "--commit: git commit failed"

    return "--commit: committed changes"
