"""Plain-text transcript renderer.

Every rendered line starts with a tag symbol followed by one space. Search
and reporting tools match on these prefixes, so the tags are a stable
format.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import StrEnum

from transcripts.parsers.models import (
    AssistantTurn,
    CanonicalEvent,
    Metadata,
    ModelChange,
    Notification,
    Source,
    Summary,
    ToolOutcome,
    UserTurn,
)


class Tag(StrEnum):
    """Line prefixes of the transcript format."""

    METADATA = "📋"
    USER = "👤"
    ASSISTANT = "🤖"
    TOOL_SUCCESS = "✅"
    TOOL_FAILURE = "❌"
    NOTIFICATION = "⏳"


def format_duration(seconds: int) -> str:
    """``1h 4m``, ``12m`` or ``45s``."""
    minutes, _ = divmod(seconds, 60)
    hours, remaining_minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining_minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def format_tokens(n: int | float) -> str:
    """Abbreviate a token count: ``1.2K``, ``3.4M`` or the plain number."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(round(n))


def _line(tag: Tag, text: str) -> str:
    return f"{tag} {text}\n"


def render_metadata(meta: Metadata) -> str:
    """Header block followed by a blank line."""
    lines = [
        _line(Tag.METADATA, f"Session: {meta.session_id}"),
        _line(Tag.METADATA, f"Project: {meta.project_path}"),
        _line(Tag.METADATA, f"Started: {meta.started_at}"),
    ]
    if meta.source == Source.CODEX:
        lines.append(_line(Tag.METADATA, f"CLI: codex {meta.tool_version}"))
        lines.append(_line(Tag.METADATA, f"Provider: {meta.provider or ''}"))
    elif meta.source == Source.CLAUDE:
        lines.append(_line(Tag.METADATA, f"Version: {meta.tool_version}"))
    if meta.title:
        lines.append(_line(Tag.METADATA, f"Title: {meta.title}"))
    if meta.branch:
        lines.append(_line(Tag.METADATA, f"Branch: {meta.branch}"))
    return "".join(lines) + "\n"


def render_summary(summary: Summary) -> str:
    """Summary block preceded by a blank line."""
    lines = ["\n", _line(Tag.METADATA, "--- Summary ---")]

    if summary.duration_seconds is not None:
        lines.append(_line(Tag.METADATA, f"Duration: {format_duration(summary.duration_seconds)}"))
    if summary.model:
        lines.append(_line(Tag.METADATA, f"Model: {summary.model}"))

    lines.append(
        _line(
            Tag.METADATA,
            f"Messages: {summary.user_turns} user, {summary.assistant_turns} assistant",
        )
    )
    lines.append(
        _line(
            Tag.METADATA,
            f"Tool calls: {summary.tool_calls} total, {summary.tool_failures} failed",
        )
    )

    file_parts: list[str] = []
    if summary.files_read:
        file_parts.append(f"{summary.files_read} read")
    if summary.files_written:
        file_parts.append(f"{summary.files_written} written")
    if summary.files_edited:
        file_parts.append(f"{summary.files_edited} edited")
    if file_parts:
        lines.append(_line(Tag.METADATA, f"Files: {', '.join(file_parts)}"))

    lines.append(
        _line(
            Tag.METADATA,
            f"Tokens: {format_tokens(summary.input_tokens)} in, "
            f"{format_tokens(summary.output_tokens)} out",
        )
    )
    if summary.cache_read_tokens or summary.cache_write_tokens:
        lines.append(
            _line(
                Tag.METADATA,
                f"Cache: {format_tokens(summary.cache_read_tokens)} read, "
                f"{format_tokens(summary.cache_write_tokens)} created",
            )
        )
    if summary.cost > 0:
        lines.append(_line(Tag.METADATA, f"Cost: ${summary.cost:.4f}"))

    return "".join(lines)


def render_event(event: CanonicalEvent) -> str:
    """Render one event as newline-terminated text."""
    if isinstance(event, Metadata):
        return render_metadata(event)
    if isinstance(event, UserTurn):
        return _line(Tag.USER, event.text)
    if isinstance(event, AssistantTurn):
        return _line(Tag.ASSISTANT, event.text)
    if isinstance(event, ToolOutcome):
        tag = Tag.TOOL_SUCCESS if event.succeeded else Tag.TOOL_FAILURE
        return _line(tag, f"{event.name}: {event.rendered_args}")
    if isinstance(event, ModelChange):
        return _line(Tag.METADATA, f"Model: {event.short_name}")
    if isinstance(event, Notification):
        return _line(Tag.NOTIFICATION, event.text)
    if isinstance(event, Summary):
        return render_summary(event)
    raise TypeError(f"Unsupported event: {type(event).__name__}")


def render_events(events: Iterable[CanonicalEvent]) -> Iterator[str]:
    """Render lazily, one chunk per event."""
    for event in events:
        yield render_event(event)


def render_transcript(events: Iterable[CanonicalEvent]) -> str:
    """Render a complete transcript as one string."""
    return "".join(render_events(events))
