"""Pairing of tool-call requests with their later results."""

import logging
from typing import Any

from .models import PendingInvocation

logger = logging.getLogger(__name__)


class CorrelationStore:
    """Session-scoped mapping from call id to pending invocation.

    One store belongs to exactly one adapter instance, so sessions converted
    side by side never see each other's calls.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingInvocation] = {}

    def record(self, call_id: str, name: str, arguments: dict[str, Any] | str) -> None:
        """Remember a call until its result arrives. A reused id overwrites."""
        self._pending[call_id] = PendingInvocation(
            call_id=call_id, name=name, arguments=arguments
        )

    def resolve(self, call_id: str) -> PendingInvocation | None:
        """Remove and return the pending call, or None when the id is unknown.

        Unknown ids are normal: the request may live in a truncated or
        separately processed log segment.
        """
        pending = self._pending.pop(call_id, None)
        if pending is None:
            logger.debug("Result for unknown call id %s dropped", call_id)
        return pending

    def discard(self) -> int:
        """Drop every unresolved call and return how many were dropped."""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
