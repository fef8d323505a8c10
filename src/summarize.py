"""Aggregate statistics across rendered transcripts.

Works from the text files alone: every figure is recovered from line
prefixes, so transcripts from any source can be summarized together.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel

from transcripts.formatters.transcript import Tag
from transcripts.parsers.stats import count_words

logger = logging.getLogger(__name__)

TOKENS_RE = re.compile(r"Tokens:\s*([\d.]+[KM]?)\s*in,\s*([\d.]+[KM]?)\s*out")
CACHE_RE = re.compile(r"Cache:\s*([\d.]+[KM]?)\s*read,\s*([\d.]+[KM]?)\s*created")
TOKEN_VALUE_RE = re.compile(r"([\d.]+)([KM]?)")
HOURS_RE = re.compile(r"(\d+)h")
MINUTES_RE = re.compile(r"(\d+)m")
SECONDS_RE = re.compile(r"(\d+)s")

MAX_GROUP_DEPTH = 3

TABLE_HEADER = (
    "| Month | Sessions | User (words) | AI (words) | Bash (✓/✗) "
    "| R/W/E | Tokens (in/out) | Time |"
)
TABLE_SEPARATOR = "|---|---|---|---|---|---|---|---|"


class ProjectStats(BaseModel):
    """Totals for one group of transcripts."""

    sessions: int = 0
    user_messages: int = 0
    user_words: int = 0
    assistant_messages: int = 0
    assistant_words: int = 0
    bash_total: int = 0
    bash_success: int = 0
    bash_failed: int = 0
    reads: int = 0
    writes: int = 0
    edits: int = 0
    input_tokens: float = 0
    output_tokens: float = 0
    cache_read: float = 0
    cache_created: float = 0
    duration_minutes: float = 0

    def add(self, other: ProjectStats) -> None:
        """Fold another group's totals into this one."""
        for name in ProjectStats.model_fields:
            setattr(self, name, getattr(self, name) + getattr(other, name))


def parse_token_value(text: str) -> float:
    """Inverse of the token abbreviation: ``1.2K`` -> 1200."""
    match = TOKEN_VALUE_RE.search(text)
    if not match:
        return 0
    try:
        number = float(match.group(1))
    except ValueError:
        return 0
    suffix = match.group(2)
    if suffix == "M":
        return number * 1_000_000
    if suffix == "K":
        return number * 1_000
    return number


def parse_duration(text: str) -> float:
    """Minutes in a rendered duration such as ``1h 4m``, ``12m`` or ``45s``."""
    minutes = 0.0
    if match := HOURS_RE.search(text):
        minutes += int(match.group(1)) * 60
    if match := MINUTES_RE.search(text):
        minutes += int(match.group(1))
    if match := SECONDS_RE.search(text):
        minutes += int(match.group(1)) / 60
    return minutes


def parse_transcript(content: str, stats: ProjectStats) -> None:
    """Add one transcript's figures to ``stats``."""
    stats.sessions += 1
    user_prefix = f"{Tag.USER} "
    assistant_prefix = f"{Tag.ASSISTANT} "
    ok = f"{Tag.TOOL_SUCCESS} "
    failed = f"{Tag.TOOL_FAILURE} "
    meta = f"{Tag.METADATA} "

    for line in content.split("\n"):
        if line.startswith(user_prefix):
            stats.user_messages += 1
            stats.user_words += count_words(line[len(user_prefix):])
        elif line.startswith(assistant_prefix):
            stats.assistant_messages += 1
            stats.assistant_words += count_words(line[len(assistant_prefix):])
        elif line.startswith(ok):
            if line.startswith(f"{ok}Bash:"):
                stats.bash_total += 1
                stats.bash_success += 1
            elif line.startswith(f"{ok}Read:"):
                stats.reads += 1
            elif line.startswith(f"{ok}Write:"):
                stats.writes += 1
            elif line.startswith(f"{ok}Edit:"):
                stats.edits += 1
        elif line.startswith(failed):
            if line.startswith(f"{failed}Bash:"):
                stats.bash_total += 1
                stats.bash_failed += 1
        elif line.startswith(f"{meta}Duration:"):
            stats.duration_minutes += parse_duration(line[len(f"{meta}Duration:"):])
        elif line.startswith(f"{meta}Tokens:"):
            if match := TOKENS_RE.search(line):
                stats.input_tokens += parse_token_value(match.group(1))
                stats.output_tokens += parse_token_value(match.group(2))
        elif line.startswith(f"{meta}Cache:"):
            if match := CACHE_RE.search(line):
                stats.cache_read += parse_token_value(match.group(1))
                stats.cache_created += parse_token_value(match.group(2))


def find_transcripts(directory: Path) -> list[Path]:
    """Every ``*.txt`` file under ``directory``."""
    return sorted(p for p in directory.rglob("*.txt") if p.is_file())


def project_key(path: Path, base_dir: Path) -> str:
    """Group key: up to three leading directory levels below ``base_dir``."""
    parts = path.relative_to(base_dir).parts
    depth = min(len(parts) - 1, MAX_GROUP_DEPTH)
    if depth > 0:
        return "/".join(parts[:depth])
    return parts[0].removesuffix(".txt") if parts else "unknown"


def collect_stats(directory: Path) -> dict[str, ProjectStats]:
    """Parse every transcript under ``directory``, grouped by project key."""
    projects: dict[str, ProjectStats] = {}
    for path in find_transcripts(directory):
        key = project_key(path, directory)
        stats = projects.setdefault(key, ProjectStats())
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable transcript %s: %s", path, e)
            continue
        parse_transcript(content, stats)
    return projects


def format_number(n: float) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(round(n))


def format_minutes(minutes: float) -> str:
    """``2h 5m`` from 60 minutes up, otherwise ``45m``."""
    if minutes >= 60:
        hours = int(minutes // 60)
        return f"{hours}h {round(minutes % 60)}m"
    return f"{round(minutes)}m"


def _row(label: str, stats: ProjectStats) -> str:
    cells = [
        label,
        str(stats.sessions),
        f"{stats.user_messages} ({format_number(stats.user_words)})",
        f"{stats.assistant_messages} ({format_number(stats.assistant_words)})",
        f"{stats.bash_total} ({stats.bash_success}/{stats.bash_failed})",
        f"{stats.reads}/{stats.writes}/{stats.edits}",
        f"{format_number(stats.input_tokens)}/{format_number(stats.output_tokens)}",
        format_minutes(stats.duration_minutes),
    ]
    return "| " + " | ".join(cells) + " |"


def render_table(projects: dict[str, ProjectStats]) -> str:
    """Markdown table, one row per group in ascending order plus a total row."""
    lines = [TABLE_HEADER, TABLE_SEPARATOR]
    totals = ProjectStats()
    for key in sorted(projects):
        stats = projects[key]
        lines.append(_row(key, stats))
        totals.add(stats)
    lines.append(TABLE_SEPARATOR)
    lines.append(_row("**TOTAL**", totals))
    return "\n".join(lines)


def summarize_directory(directory: Path) -> str:
    """Collect and render statistics for every transcript under ``directory``."""
    return render_table(collect_stats(directory))
