"""Session-scoped tool approval state."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from agent_orchestrator.scheduler.models import TrackedToolCall
    from agent_orchestrator.tools.base import ConfirmationDetails


class ApprovalOutcome(str, Enum):
    PROCEED_ONCE = "proceed_once"
    PROCEED_ALWAYS = "proceed_always"
    DENY = "deny"

    @classmethod
    def from_answer(cls, answer: str) -> ApprovalOutcome:
        """Map a free-form user answer onto an outcome."""
        normalized = answer.strip().lower()
        if normalized in {"always", "a"}:
            return cls.PROCEED_ALWAYS
        if normalized in {"y", "yes", "allow"}:
            return cls.PROCEED_ONCE
        return cls.DENY


class ApprovalSession:
    """Tool root commands the user approved for the rest of the session.

    One instance is created per conversation and handed to every scheduler
    (and approval hook) that serves it.
    """

    def __init__(self, approved: Iterable[str] = ()) -> None:
        self._approved: set[str] = {root.strip() for root in approved if root.strip()}

    def is_approved(self, root_command: str) -> bool:
        return root_command in self._approved

    def approve(self, root_command: str) -> None:
        self._approved.add(root_command)

    def revoke(self, root_command: str) -> None:
        self._approved.discard(root_command)

    @property
    def approved(self) -> frozenset[str]:
        return frozenset(self._approved)


class ApprovalHandler(Protocol):
    """Presentation-layer prompt asking the user to confirm a tool call."""

    async def request_approval(
        self, call: TrackedToolCall, details: ConfirmationDetails
    ) -> ApprovalOutcome: ...
