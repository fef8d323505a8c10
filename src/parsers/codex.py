"""Codex CLI transcript adapter for .codex/sessions rollout logs."""

import json
import logging
import re
from typing import Any

from transcripts.formatters.fields import (
    CODEX_SHELL_TOOLS,
    format_codex_arguments,
    shell_command_text,
)

from .base import StreamingAdapter
from .models import CanonicalEvent, FileAccess, Metadata, PendingInvocation, Source
from .shell import extract_read_path

logger = logging.getLogger(__name__)

CONTEXT_BLOCK_RE = re.compile(r'<context ref="[^"]*">[\s\S]*?</context>')
FILE_REFERENCE_RE = re.compile(r"\[@[^\]]+\]\([^)]+\)\s*")
EXIT_CODE_RE = re.compile(r'"exit_code":\s*(-?\d+)')
EXIT_TEXT_RE = re.compile(r"^Exit code:\s*(-?\d+)", re.MULTILINE)

FILE_TOOLS: dict[str, FileAccess] = {
    "read_file": FileAccess.READ,
    "write_file": FileAccess.WRITE,
}

CALL_TYPES = frozenset({"function_call", "custom_tool_call"})
OUTPUT_TYPES = frozenset({"function_call_output", "custom_tool_call_output"})


class CodexAdapter(StreamingAdapter):
    """Streaming adapter for the rollout JSONL format written by Codex CLI.

    Every line is ``{"timestamp", "type", "payload"}`` where ``type`` is one
    of ``session_meta``, ``response_item``, ``event_msg`` or
    ``turn_context``. Function calls and their outputs are separate
    ``response_item`` records joined by ``call_id``.
    """

    source = Source.CODEX

    def _translate(self, record: dict[str, Any]) -> list[CanonicalEvent]:
        events: list[CanonicalEvent] = []
        self._stats.observe_timestamp(record.get("timestamp"))

        payload = record.get("payload")
        if not isinstance(payload, dict):
            return events

        record_type = record.get("type")
        if record_type == "session_meta":
            self._process_session_meta(payload, events)
        elif record_type == "response_item":
            self._process_response_item(payload, events)
        elif record_type == "event_msg":
            self._process_event_msg(payload, events)
        elif record_type == "turn_context":
            change = self._observe_model(payload.get("model"))
            if change is not None:
                events.append(change)

        if events and self._metadata is None:
            # Content before session_meta: latch a header from this record
            self._metadata = Metadata(
                source=self.source, started_at=str(record.get("timestamp") or "")
            )
            header: list[CanonicalEvent] = []
            self._emit_metadata(header)
            events[:0] = header

        return events

    def _summary_model(self) -> str | None:
        return self._current_model

    def _process_session_meta(
        self, payload: dict[str, Any], events: list[CanonicalEvent]
    ) -> None:
        if self._metadata is None:
            git = payload.get("git")
            branch = git.get("branch") if isinstance(git, dict) else None
            self._metadata = Metadata(
                source=self.source,
                session_id=str(payload.get("id") or ""),
                project_path=str(payload.get("cwd") or ""),
                started_at=str(payload.get("timestamp") or ""),
                tool_version=str(payload.get("cli_version") or ""),
                provider=str(payload.get("model_provider") or ""),
                branch=branch or None,
            )
        self._emit_metadata(events)

    def _process_response_item(
        self, payload: dict[str, Any], events: list[CanonicalEvent]
    ) -> None:
        item_type = payload.get("type")
        if item_type == "message":
            # User text is duplicated by the matching event_msg record
            if payload.get("role") != "assistant":
                return
            content = payload.get("content")
            if not isinstance(content, list):
                return
            for block in content:
                if isinstance(block, dict) and block.get("type") == "output_text":
                    turn = self._assistant_turn(block.get("text"))
                    if turn is not None:
                        events.append(turn)
                        self._stats.assistant_turns += 1
        elif item_type in CALL_TYPES:
            call_id = payload.get("call_id")
            name = payload.get("name")
            if not call_id or not name:
                return
            arguments = payload.get("arguments", payload.get("input"))
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments) if arguments is not None else "{}"
            self._store.record(str(call_id), str(name), arguments)
        elif item_type in OUTPUT_TYPES:
            self._process_call_output(payload, events)
        # "reasoning" items hold encrypted content and are skipped

    def _process_call_output(
        self, payload: dict[str, Any], events: list[CanonicalEvent]
    ) -> None:
        pending = self._resolve(payload.get("call_id"))
        if pending is None:
            return

        succeeded = not _reports_failure(payload.get("output"))
        arguments = pending.arguments if isinstance(pending.arguments, str) else "{}"
        events.append(
            self._tool_outcome(
                pending.name,
                format_codex_arguments(pending.name, arguments),
                succeeded,
                _touched_file(pending),
            )
        )

    def _process_event_msg(self, payload: dict[str, Any], events: list[CanonicalEvent]) -> None:
        msg_type = payload.get("type")
        if msg_type == "user_message":
            message = payload.get("message")
            if not isinstance(message, str):
                return
            # Remove attached file context and [@file](url) references
            text = CONTEXT_BLOCK_RE.sub("", message)
            text = FILE_REFERENCE_RE.sub("", text)
            turn = self._user_turn(text)
            if turn is not None:
                events.append(turn)
                self._stats.user_turns += 1
        elif msg_type == "token_count":
            info = payload.get("info")
            usage = info.get("last_token_usage") if isinstance(info, dict) else None
            if isinstance(usage, dict):
                self._stats.add_tokens(
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                    cache_read=usage.get("cached_input_tokens", 0),
                )


def _reports_failure(output: object) -> bool:
    """True when a call output carries a non-zero exit code."""
    if isinstance(output, str):
        try:
            decoded = json.loads(output)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict):
            output = decoded
        else:
            match = EXIT_CODE_RE.search(output) or EXIT_TEXT_RE.search(output)
            return match is not None and int(match.group(1)) != 0

    if isinstance(output, dict):
        metadata = output.get("metadata")
        exit_code = metadata.get("exit_code") if isinstance(metadata, dict) else None
        if exit_code is None:
            exit_code = output.get("exit_code")
        return isinstance(exit_code, int) and not isinstance(exit_code, bool) and exit_code != 0

    return False


def _touched_file(pending: PendingInvocation) -> tuple[FileAccess, str] | None:
    """Work out which file, if any, a resolved call read or wrote."""
    if not isinstance(pending.arguments, str):
        return None
    try:
        args = json.loads(pending.arguments)
    except json.JSONDecodeError:
        return None
    if not isinstance(args, dict):
        return None

    if pending.name in CODEX_SHELL_TOOLS:
        command = shell_command_text(args.get("command", args.get("cmd")))
        path = extract_read_path(command)
        return (FileAccess.READ, path) if path else None

    access = FILE_TOOLS.get(pending.name)
    path = args.get("path")
    if access is not None and isinstance(path, str) and path:
        return access, path
    return None
