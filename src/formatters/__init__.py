"""Formatters for transcript output."""

from transcripts.formatters.fields import (
    format_claude_input,
    format_codex_arguments,
    format_opencode_state,
    shorten_model_name,
)
from transcripts.formatters.transcript import (
    Tag,
    format_duration,
    format_tokens,
    render_event,
    render_events,
    render_transcript,
)

__all__ = [
    "Tag",
    "format_claude_input",
    "format_codex_arguments",
    "format_duration",
    "format_opencode_state",
    "format_tokens",
    "render_event",
    "render_events",
    "render_transcript",
    "shorten_model_name",
]
