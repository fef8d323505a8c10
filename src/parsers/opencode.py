"""OpenCode transcript adapter for .local/share/opencode/storage.

OpenCode has no single ordered log. One session is spread across three
collections of small JSON files joined by foreign keys::

    storage/session/<project-id>/<session-id>.json
    storage/message/<session-id>/<message-id>.json
    storage/part/<message-id>/<part-id>.json

``OpenCodeStorage`` performs the join and ``OpenCodeAdapter`` replays the
joined tree through the same canonical events as the streaming adapters.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from transcripts.errors import StorageUnavailable
from transcripts.formatters.fields import format_opencode_state

from .base import TranscriptAdapter
from .models import CanonicalEvent, FileAccess, Metadata, Source, ToolOutcome

logger = logging.getLogger(__name__)

SESSION_ID_PREFIX = "ses_"

# 9999-12-31T23:59:59.999Z, the last instant datetime can represent
MAX_EPOCH_MS = 253402300799999

# User text parts the tool injects on the user's behalf
INJECTED_PREFIXES = ("<file>", "Called the")

FILE_TOOLS: dict[str, FileAccess] = {
    "read": FileAccess.READ,
    "write": FileAccess.WRITE,
    "edit": FileAccess.EDIT,
}


def _epoch_ms_in_range(value: int | None) -> int | None:
    if value is not None and not 0 <= value <= MAX_EPOCH_MS:
        raise ValueError(f"epoch milliseconds out of range: {value}")
    return value


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SessionTime(_Record):
    created: int
    updated: int | None = None

    @field_validator("created", "updated")
    @classmethod
    def check_range(cls, value: int | None) -> int | None:
        return _epoch_ms_in_range(value)


class OpenCodeSessionInfo(_Record):
    """One ``session/<project>/<id>.json`` file."""

    id: str
    version: str = ""
    project_id: str = Field(default="", alias="projectID")
    directory: str = ""
    title: str = ""
    time: SessionTime


class MessageTime(_Record):
    created: int
    completed: int | None = None

    @field_validator("created", "completed")
    @classmethod
    def check_range(cls, value: int | None) -> int | None:
        return _epoch_ms_in_range(value)


class TokenCache(_Record):
    read: int = 0
    write: int = 0


class MessageTokens(_Record):
    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache: TokenCache | None = None


class OpenCodeMessage(_Record):
    """One ``message/<session>/<id>.json`` file."""

    id: str
    session_id: str = Field(default="", alias="sessionID")
    role: str
    time: MessageTime
    model_id: str | None = Field(default=None, alias="modelID")
    provider_id: str | None = Field(default=None, alias="providerID")
    cost: float | None = None
    tokens: MessageTokens | None = None


class OpenCodePart(_Record):
    """One ``part/<message>/<id>.json`` file."""

    id: str = ""
    session_id: str = Field(default="", alias="sessionID")
    message_id: str = Field(default="", alias="messageID")
    type: str
    text: str | None = None
    synthetic: bool = False
    call_id: str | None = Field(default=None, alias="callID")
    tool: str | None = None
    state: dict[str, Any] | None = None


class OpenCodeSessionData(BaseModel):
    """Joined session tree: messages sorted by creation, parts per message."""

    session: OpenCodeSessionInfo
    messages: list[OpenCodeMessage] = Field(default_factory=list)
    parts: dict[str, list[OpenCodePart]] = Field(default_factory=dict)


class OpenCodeStorage:
    """Reads and joins the entity files under an OpenCode storage directory."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self._parse_errors: list[str] = []

    @property
    def parse_errors(self) -> list[str]:
        """Return any errors encountered during parsing."""
        return self._parse_errors.copy()

    def list_session_ids(self) -> list[str]:
        """Session ids that have a message directory."""
        message_dir = self.storage_dir / "message"
        if not message_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in message_dir.iterdir()
            if entry.is_dir() and entry.name.startswith(SESSION_ID_PREFIX)
        )

    def message_dir(self, session_id: str) -> Path:
        return self.storage_dir / "message" / session_id

    def load_session(self, session_id: str) -> OpenCodeSessionData:
        """Join the session record, its messages and their parts.

        Raises:
            StorageUnavailable: If the session record is missing or
                unreadable, or the session has no readable messages.
        """
        session = self.find_session(session_id)
        messages = self.load_messages(session_id)
        if not messages:
            raise StorageUnavailable(f"No messages stored for session {session_id}")

        parts: dict[str, list[OpenCodePart]] = {}
        for message in messages:
            message_parts = self.load_parts(message.id)
            if message_parts:
                parts[message.id] = message_parts

        return OpenCodeSessionData(session=session, messages=messages, parts=parts)

    def find_session(self, session_id: str) -> OpenCodeSessionInfo:
        """Locate the session record under any project directory.

        Session ids are globally unique, so the first match wins.

        Raises:
            StorageUnavailable: If no readable record exists.
        """
        session_root = self.storage_dir / "session"
        if not session_root.is_dir():
            raise StorageUnavailable(f"Session directory missing: {session_root}")

        filename = f"{session_id}.json"
        for project_dir in sorted(session_root.iterdir()):
            candidate = project_dir / filename
            if not candidate.is_file():
                continue
            data = self._read_json(candidate)
            if data is None:
                raise StorageUnavailable(f"Unreadable session record: {candidate}")
            try:
                return OpenCodeSessionInfo.model_validate(data)
            except ValidationError as e:
                raise StorageUnavailable(f"Invalid session record {candidate}: {e}") from e

        raise StorageUnavailable(f"Session record not found: {session_id}")

    def load_messages(self, session_id: str) -> list[OpenCodeMessage]:
        """Load a session's messages sorted by creation time.

        Directory enumeration order carries no meaning, so the sort is the
        only ordering relied upon.

        Raises:
            StorageUnavailable: If the message directory is missing.
        """
        messages_dir = self.message_dir(session_id)
        if not messages_dir.is_dir():
            raise StorageUnavailable(f"Message directory missing: {messages_dir}")

        messages: list[OpenCodeMessage] = []
        for path in sorted(messages_dir.glob("*.json")):
            message = self._load_entity(path, OpenCodeMessage)
            if message is not None:
                messages.append(message)

        messages.sort(key=lambda m: m.time.created)
        return messages

    def load_parts(self, message_id: str) -> list[OpenCodePart]:
        """Load a message's parts in file-name order.

        Parts carry no ordering field. Part ids are generated in ascending
        order, so file-name order approximates creation order; it is not
        guaranteed to match it.
        """
        parts_dir = self.storage_dir / "part" / message_id
        if not parts_dir.is_dir():
            return []

        parts: list[OpenCodePart] = []
        for path in sorted(parts_dir.glob("*.json")):
            part = self._load_entity(path, OpenCodePart)
            if part is not None:
                parts.append(part)
        return parts

    def _load_entity(self, path: Path, model: type[_Record]) -> Any:
        data = self._read_json(path)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            error_msg = f"Invalid {model.__name__} in {path}: {e.error_count()} error(s)"
            logger.debug(error_msg)
            self._parse_errors.append(error_msg)
            return None

    def _read_json(self, path: Path) -> Any:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            error_msg = f"Error reading {path}: {e}"
            logger.debug(error_msg)
            self._parse_errors.append(error_msg)
            return None


def epoch_ms_to_iso(ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OpenCodeAdapter(TranscriptAdapter):
    """Replays a joined OpenCode session as canonical events.

    Tool parts already carry their final state, so no correlation is
    needed; ``finalize()`` has the same contract as the streaming adapters.
    """

    source = Source.OPENCODE

    def __init__(self, data: OpenCodeSessionData) -> None:
        super().__init__()
        self._data = data

    def _summary_model(self) -> str | None:
        return self._current_model

    def replay(self) -> list[CanonicalEvent]:
        """Emit every event for the session, in message creation order."""
        session = self._data.session
        events: list[CanonicalEvent] = []

        self._metadata = Metadata(
            source=self.source,
            session_id=session.id,
            project_path=session.directory,
            started_at=epoch_ms_to_iso(session.time.created),
            tool_version=session.version,
            title=session.title or None,
        )
        self._emit_metadata(events)

        for message in self._data.messages:
            self._process_message(message, events)

        return events

    def convert(self) -> list[CanonicalEvent]:
        """Replay the session and append the summary if there is one."""
        events = self.replay()
        summary = self.finalize()
        if summary is not None:
            events.append(summary)
        return events

    def _process_message(self, message: OpenCodeMessage, events: list[CanonicalEvent]) -> None:
        self._stats.observe_timestamp(
            epoch_ms_to_iso(message.time.completed or message.time.created)
        )

        if message.tokens is not None:
            cache = message.tokens.cache or TokenCache()
            self._stats.add_tokens(
                input_tokens=message.tokens.input,
                output_tokens=message.tokens.output,
                cache_read=cache.read,
                cache_write=cache.write,
            )
        if message.cost:
            self._stats.add_cost(message.cost)

        change = self._observe_model(message.model_id)
        if change is not None:
            events.append(change)

        parts = self._data.parts.get(message.id, [])
        if message.role == "user":
            self._process_user_parts(parts, events)
        elif message.role == "assistant":
            self._process_assistant_parts(parts, events)

    def _process_user_parts(self, parts: list[OpenCodePart], events: list[CanonicalEvent]) -> None:
        for part in parts:
            if part.type != "text" or not part.text:
                continue
            if part.synthetic or part.text.startswith(INJECTED_PREFIXES):
                continue
            turn = self._user_turn(part.text)
            if turn is not None:
                events.append(turn)
                self._stats.user_turns += 1

    def _process_assistant_parts(
        self, parts: list[OpenCodePart], events: list[CanonicalEvent]
    ) -> None:
        for part in parts:
            if part.type == "text":
                turn = self._assistant_turn(part.text)
                if turn is not None:
                    events.append(turn)
                    self._stats.assistant_turns += 1
            elif part.type == "tool" and part.state is not None:
                events.append(self._tool_part(part, part.state))
            # reasoning, step-start, step-finish and file parts are skipped

    def _tool_part(self, part: OpenCodePart, state: dict[str, Any]) -> ToolOutcome:
        metadata = state.get("metadata")
        exit_code = metadata.get("exit") if isinstance(metadata, dict) else None
        numeric = isinstance(exit_code, (int, float)) and not isinstance(exit_code, bool)
        succeeded = not numeric or exit_code == 0

        name = part.tool or "unknown"
        touched = None
        tool_input = state.get("input")
        access = FILE_TOOLS.get(name)
        if access is not None and isinstance(tool_input, dict):
            path = tool_input.get("filePath")
            if isinstance(path, str) and path:
                touched = (access, path)

        return self._tool_outcome(name, format_opencode_state(state), succeeded, touched)
