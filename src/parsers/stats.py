"""Running per-session statistics."""

import math
from datetime import datetime

from pydantic import BaseModel, Field

from .models import FileAccess, Summary


def parse_timestamp(ts_str: str) -> datetime:
    """Parse an ISO format timestamp string.

    Raises:
        ValueError: If timestamp cannot be parsed
    """
    # Handle ISO format with Z suffix
    if ts_str.endswith("Z"):
        ts_str = ts_str[:-1] + "+00:00"
    return datetime.fromisoformat(ts_str)


def count_words(text: str) -> int:
    """Count whitespace-separated tokens."""
    return len(text.split())


class SessionStats(BaseModel):
    """Monotonic counters for one session.

    File paths are kept in sets so a file touched many times counts once.
    ``last_timestamp`` is overwritten by every record that carries one.
    """

    user_turns: int = 0
    assistant_turns: int = 0
    user_words: int = 0
    assistant_words: int = 0
    tool_calls: int = 0
    tool_failures: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    cost: float = 0.0
    files_read: set[str] = Field(default_factory=set)
    files_written: set[str] = Field(default_factory=set)
    files_edited: set[str] = Field(default_factory=set)
    last_timestamp: str | None = None

    def observe_timestamp(self, ts: object) -> None:
        if isinstance(ts, str) and ts:
            self.last_timestamp = ts

    def add_user_words(self, text: str) -> None:
        self.user_words += count_words(text)

    def add_assistant_words(self, text: str) -> None:
        self.assistant_words += count_words(text)

    def record_tool_outcome(self, succeeded: bool) -> None:
        self.tool_calls += 1
        if not succeeded:
            self.tool_failures += 1

    def touch_file(self, access: FileAccess, path: str) -> None:
        """Add ``path`` to the set matching ``access``."""
        if access is FileAccess.READ:
            self.files_read.add(path)
        elif access is FileAccess.WRITE:
            self.files_written.add(path)
        elif access is FileAccess.EDIT:
            self.files_edited.add(path)

    def add_tokens(
        self,
        *,
        input_tokens: object = 0,
        output_tokens: object = 0,
        cache_read: object = 0,
        cache_write: object = 0,
    ) -> None:
        """Fold token counts in; non-numeric values count as zero."""
        self.input_tokens += _as_int(input_tokens)
        self.output_tokens += _as_int(output_tokens)
        self.cache_read_tokens += _as_int(cache_read)
        self.cache_write_tokens += _as_int(cache_write)

    def add_cost(self, cost: object) -> None:
        if isinstance(cost, (int, float)) and not isinstance(cost, bool) and math.isfinite(cost):
            self.cost += cost

    @property
    def has_turns(self) -> bool:
        return self.user_turns > 0 or self.assistant_turns > 0

    def duration_seconds(self, started_at: str | None) -> int | None:
        """Whole seconds from ``started_at`` to the last observed timestamp.

        Returns None when either end is missing or unparseable, or when the
        result would be negative.
        """
        if not started_at or not self.last_timestamp:
            return None
        try:
            delta = parse_timestamp(self.last_timestamp) - parse_timestamp(started_at)
        except (ValueError, TypeError):
            return None
        seconds = delta.total_seconds()
        if seconds < 0:
            return None
        return int(seconds)

    def to_summary(self, started_at: str | None, model: str | None = None) -> Summary | None:
        """Build the summary event, or None for a session without turns."""
        if not self.has_turns:
            return None
        return Summary(
            duration_seconds=self.duration_seconds(started_at),
            model=model,
            user_turns=self.user_turns,
            assistant_turns=self.assistant_turns,
            user_words=self.user_words,
            assistant_words=self.assistant_words,
            tool_calls=self.tool_calls,
            tool_failures=self.tool_failures,
            files_read=len(self.files_read),
            files_written=len(self.files_written),
            files_edited=len(self.files_edited),
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_read_tokens=self.cache_read_tokens,
            cache_write_tokens=self.cache_write_tokens,
            cost=self.cost,
        )


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return 0
