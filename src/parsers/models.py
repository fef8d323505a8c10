"""Canonical transcript event models.

Every source adapter translates its own record schema into the events defined
here. The renderer and the batch driver depend only on these models, never on
a source's raw records.

All shared model types live here to avoid circular imports between parsers and
formatters.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

# Model identifier some sources write for locally synthesized messages.
SYNTHETIC_MODEL = "<synthetic>"


class Source(StrEnum):
    """Session sources with a dedicated adapter."""

    CLAUDE = "claude"
    CODEX = "codex"
    OPENCODE = "opencode"


class FileAccess(StrEnum):
    """File-touch categories tracked by the statistics accumulator."""

    READ = "read"
    WRITE = "write"
    EDIT = "edit"


class Metadata(BaseModel):
    """Session header, emitted once before any content."""

    kind: Literal["metadata"] = "metadata"
    source: Source
    session_id: str = ""
    project_path: str = ""
    started_at: str = ""
    tool_version: str = ""
    branch: str | None = None
    provider: str | None = None
    title: str | None = None


class UserTurn(BaseModel):
    """Text authored by the human."""

    kind: Literal["user"] = "user"
    text: str


class AssistantTurn(BaseModel):
    """Text produced by the assistant."""

    kind: Literal["assistant"] = "assistant"
    text: str


class ToolOutcome(BaseModel):
    """A resolved tool invocation, stripped of its output payload."""

    kind: Literal["tool"] = "tool"
    name: str
    rendered_args: str = ""
    succeeded: bool = True


class ModelChange(BaseModel):
    """The active model switched to a different identifier."""

    kind: Literal["model"] = "model"
    short_name: str


class Notification(BaseModel):
    """Out-of-band background task text."""

    kind: Literal["notification"] = "notification"
    text: str


class Summary(BaseModel):
    """Per-session totals derived from the statistics accumulator."""

    kind: Literal["summary"] = "summary"
    duration_seconds: int | None = None
    model: str | None = None
    user_turns: int = 0
    assistant_turns: int = 0
    user_words: int = 0
    assistant_words: int = 0
    tool_calls: int = 0
    tool_failures: int = 0
    files_read: int = 0
    files_written: int = 0
    files_edited: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    cost: float = 0.0


CanonicalEvent = Annotated[
    Union[
        Metadata,
        UserTurn,
        AssistantTurn,
        ToolOutcome,
        ModelChange,
        Notification,
        Summary,
    ],
    Field(discriminator="kind"),
]


class PendingInvocation(BaseModel):
    """A tool call whose result has not been observed yet.

    ``arguments`` is the decoded input mapping for sources that send one, or
    the raw JSON argument string for sources that send arguments as text.
    """

    call_id: str
    name: str
    arguments: dict[str, Any] | str = Field(default_factory=dict)
