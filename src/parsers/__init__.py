"""Adapters that turn AI coding assistant logs into canonical events."""

from .base import StreamingAdapter, TranscriptAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .correlation import CorrelationStore
from .models import (
    AssistantTurn,
    CanonicalEvent,
    FileAccess,
    Metadata,
    ModelChange,
    Notification,
    PendingInvocation,
    Source,
    Summary,
    ToolOutcome,
    UserTurn,
)
from .opencode import OpenCodeAdapter, OpenCodeSessionData, OpenCodeStorage
from .stats import SessionStats

__all__ = [
    "AssistantTurn",
    "CanonicalEvent",
    "ClaudeAdapter",
    "CodexAdapter",
    "CorrelationStore",
    "FileAccess",
    "Metadata",
    "ModelChange",
    "Notification",
    "OpenCodeAdapter",
    "OpenCodeSessionData",
    "OpenCodeStorage",
    "PendingInvocation",
    "SessionStats",
    "Source",
    "StreamingAdapter",
    "Summary",
    "ToolOutcome",
    "TranscriptAdapter",
    "UserTurn",
]
