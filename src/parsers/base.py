"""Shared state and contracts for source adapters."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from typing import Any, ClassVar

from transcripts.formatters.fields import shorten_model_name

from .correlation import CorrelationStore
from .models import (
    SYNTHETIC_MODEL,
    AssistantTurn,
    CanonicalEvent,
    FileAccess,
    Metadata,
    ModelChange,
    PendingInvocation,
    Source,
    Summary,
    ToolOutcome,
    UserTurn,
)
from .stats import SessionStats

logger = logging.getLogger(__name__)


class TranscriptAdapter(ABC):
    """Per-session translation state common to every source.

    An instance owns one correlation store and one statistics accumulator and
    must not be reused for a second session.
    """

    source: ClassVar[Source]

    def __init__(self) -> None:
        self._store = CorrelationStore()
        self._stats = SessionStats()
        self._metadata: Metadata | None = None
        self._metadata_emitted = False
        self._current_model: str | None = None
        self._parse_errors: list[str] = []

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def metadata(self) -> Metadata | None:
        return self._metadata

    @property
    def pending_calls(self) -> int:
        """Number of tool calls still waiting for a result."""
        return len(self._store)

    @property
    def parse_errors(self) -> list[str]:
        """Return any errors encountered during parsing."""
        return self._parse_errors.copy()

    def finalize(self) -> Summary | None:
        """Close the session and return its summary.

        Unresolved tool calls are discarded without output. Returns None when
        no user or assistant turn was emitted.
        """
        dropped = self._store.discard()
        if dropped:
            logger.debug("%s: discarded %d unresolved tool call(s)", self.source, dropped)
        started_at = self._metadata.started_at if self._metadata else None
        return self._stats.to_summary(started_at, self._summary_model())

    def _summary_model(self) -> str | None:
        """Model reported on the summary; sources without one return None."""
        return None

    def _emit_metadata(self, events: list[CanonicalEvent]) -> None:
        if self._metadata is not None and not self._metadata_emitted:
            events.append(self._metadata)
            self._metadata_emitted = True

    def _observe_model(self, model: object) -> ModelChange | None:
        """Return a ModelChange when ``model`` differs from the active model."""
        if not isinstance(model, str) or not model or model == SYNTHETIC_MODEL:
            return None
        if model == self._current_model:
            return None
        self._current_model = model
        return ModelChange(short_name=shorten_model_name(model))

    def _user_turn(self, text: object) -> UserTurn | None:
        if not isinstance(text, str):
            return None
        trimmed = text.strip()
        if not trimmed:
            return None
        self._stats.add_user_words(trimmed)
        return UserTurn(text=trimmed)

    def _assistant_turn(self, text: object) -> AssistantTurn | None:
        if not isinstance(text, str):
            return None
        trimmed = text.strip()
        if not trimmed:
            return None
        self._stats.add_assistant_words(trimmed)
        return AssistantTurn(text=trimmed)

    def _tool_outcome(
        self,
        name: str,
        rendered_args: str,
        succeeded: bool,
        touched: tuple[FileAccess, str] | None = None,
    ) -> ToolOutcome:
        """Count a resolved invocation and track its file, on success only."""
        self._stats.record_tool_outcome(succeeded)
        if succeeded and touched is not None:
            self._stats.touch_file(*touched)
        return ToolOutcome(name=name, rendered_args=rendered_args, succeeded=succeeded)


class StreamingAdapter(TranscriptAdapter):
    """Adapter driven one JSONL line at a time.

    Memory is bounded by the number of unresolved tool calls, not by the
    length of the session.
    """

    def consume_record(self, raw_line: str) -> list[CanonicalEvent]:
        """Translate one raw line into zero or more canonical events.

        Never raises: malformed lines and records that fail translation
        produce no events.
        """
        line = raw_line.strip()
        if not line:
            return []

        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            self._note_error(f"JSON decode error: {e}")
            return []
        if not isinstance(record, dict):
            self._note_error(f"Expected a JSON object, got {type(record).__name__}")
            return []

        try:
            return self._translate(record)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self._note_error(f"Unreadable {record.get('type')!r} record: {e}")
            return []

    def convert(self, lines: Iterable[str]) -> Iterator[CanonicalEvent]:
        """Yield every event for ``lines``, followed by the summary if any."""
        for line in lines:
            yield from self.consume_record(line)
        summary = self.finalize()
        if summary is not None:
            yield summary

    @abstractmethod
    def _translate(self, record: dict[str, Any]) -> list[CanonicalEvent]:
        """Translate one decoded record."""

    def _resolve(self, call_id: object) -> PendingInvocation | None:
        if not isinstance(call_id, str) or not call_id:
            return None
        return self._store.resolve(call_id)

    def _note_error(self, message: str) -> None:
        logger.debug("%s: %s", self.source, message)
        self._parse_errors.append(message)
