"""Claude Code transcript adapter for .claude/projects/*/<session>.jsonl logs."""

import logging
import re
from typing import Any

from transcripts.formatters.fields import format_claude_input

from .base import StreamingAdapter
from .models import (
    CanonicalEvent,
    FileAccess,
    Metadata,
    Notification,
    Source,
)

logger = logging.getLogger(__name__)

# Tool name -> file-touch category, path taken from input.file_path
FILE_TOOLS: dict[str, FileAccess] = {
    "Read": FileAccess.READ,
    "Write": FileAccess.WRITE,
    "Edit": FileAccess.EDIT,
    "MultiEdit": FileAccess.EDIT,
}

QUEUE_SUMMARY_RE = re.compile(r"<summary>([^<]+)</summary>")
QUEUE_FALLBACK_CHARS = 100

CONTENT_TYPES = frozenset({"user", "assistant", "queue-operation"})


class ClaudeAdapter(StreamingAdapter):
    """Streaming adapter for the JSONL format used by Claude Code.

    Each line is one record of type ``user``, ``assistant`` or
    ``queue-operation``. Tool calls arrive as ``tool_use`` blocks inside
    assistant records and are resolved by ``tool_result`` blocks inside a
    later user record with the same id.
    """

    source = Source.CLAUDE

    def _translate(self, record: dict[str, Any]) -> list[CanonicalEvent]:
        events: list[CanonicalEvent] = []

        record_type = record.get("type")

        # Leading "summary" records carry no session fields
        if self._metadata is None and ("sessionId" in record or record_type in CONTENT_TYPES):
            self._metadata = Metadata(
                source=self.source,
                session_id=str(record.get("sessionId") or ""),
                project_path=str(record.get("cwd") or ""),
                started_at=str(record.get("timestamp") or ""),
                tool_version=str(record.get("version") or ""),
                branch=record.get("gitBranch") or None,
            )
        self._emit_metadata(events)
        self._stats.observe_timestamp(record.get("timestamp"))

        if record_type == "user":
            self._process_user_record(record, events)
        elif record_type == "assistant":
            self._process_assistant_record(record, events)
        elif record_type == "queue-operation":
            self._process_queue_operation(record, events)

        return events

    def _process_user_record(self, record: dict[str, Any], events: list[CanonicalEvent]) -> None:
        """Handle both typed text and tool results.

        System-injected records (``isMeta``) and text starting with ``<``
        (commands, hook output, reminders) are not human turns.
        """
        if record.get("isMeta"):
            return
        message = record.get("message")
        if not isinstance(message, dict) or message.get("role", "user") != "user":
            return

        content = message.get("content")
        emitted = False
        if isinstance(content, str):
            emitted = self._add_user_text(content, events)
        elif isinstance(content, list):
            for block in content:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text":
                    emitted = self._add_user_text(block.get("text"), events) or emitted
                elif block.get("type") == "tool_result":
                    self._process_tool_result(block, events)

        if emitted:
            self._stats.user_turns += 1

    def _add_user_text(self, text: object, events: list[CanonicalEvent]) -> bool:
        if not isinstance(text, str) or text.startswith("<"):
            return False
        turn = self._user_turn(text)
        if turn is None:
            return False
        events.append(turn)
        return True

    def _process_assistant_record(
        self, record: dict[str, Any], events: list[CanonicalEvent]
    ) -> None:
        message = record.get("message")
        if not isinstance(message, dict) or message.get("role", "assistant") != "assistant":
            return

        change = self._observe_model(message.get("model"))
        if change is not None:
            events.append(change)

        usage = message.get("usage")
        if isinstance(usage, dict):
            self._stats.add_tokens(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
                cache_read=usage.get("cache_read_input_tokens", 0),
                cache_write=usage.get("cache_creation_input_tokens", 0),
            )

        content = message.get("content")
        if isinstance(content, str):
            content = [{"type": "text", "text": content}]
        if not isinstance(content, list):
            return

        has_text = False
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                turn = self._assistant_turn(block.get("text"))
                if turn is not None:
                    events.append(turn)
                    has_text = True
            elif block_type == "tool_use":
                tool_id = block.get("id")
                if isinstance(tool_id, str) and tool_id:
                    tool_input = block.get("input")
                    self._store.record(
                        tool_id,
                        str(block.get("name") or "unknown"),
                        tool_input if isinstance(tool_input, dict) else {},
                    )
            # Skip "thinking" blocks - they're internal

        if has_text:
            self._stats.assistant_turns += 1

    def _process_tool_result(self, block: dict[str, Any], events: list[CanonicalEvent]) -> None:
        pending = self._resolve(block.get("tool_use_id"))
        if pending is None:
            return

        arguments = pending.arguments if isinstance(pending.arguments, dict) else {}
        succeeded = block.get("is_error") is not True
        touched = None
        access = FILE_TOOLS.get(pending.name)
        file_path = arguments.get("file_path")
        if access is not None and isinstance(file_path, str) and file_path:
            touched = (access, file_path)

        events.append(
            self._tool_outcome(
                pending.name,
                format_claude_input(pending.name, arguments),
                succeeded,
                touched,
            )
        )

    def _process_queue_operation(
        self, record: dict[str, Any], events: list[CanonicalEvent]
    ) -> None:
        content = record.get("content")
        if not isinstance(content, str) or not content:
            return
        match = QUEUE_SUMMARY_RE.search(content)
        text = match.group(1) if match else content[:QUEUE_FALLBACK_CHARS]
        text = text.strip()
        if text:
            events.append(Notification(text=text))
