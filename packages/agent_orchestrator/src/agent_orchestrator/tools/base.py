"""Tool capability set: validate, requires_confirmation, execute."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.tools.registry import ToolDefinition

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool body.

    Attributes:
        llm_content: Text returned to the model.
        return_display: Short text for the presentation layer.
        error: Failure message; a result with an error ends the call in ``error``.
        data: Machine-readable payload (summary counts and similar).
    """

    llm_content: str
    return_display: str = ""
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationDetails:
    """Approval prompt shown before a tool runs."""

    title: str
    prompt: str
    root_command: str


class Tool(ABC):
    """Polymorphic tool body registered under ``definition.name``."""

    definition: ToolDefinition

    @property
    def name(self) -> str:
        return self.definition.name

    def validate(self, args: dict[str, Any]) -> str | None:  # noqa: ARG002
        """Return an error message for invalid ``args``, ``None`` when valid."""
        return None

    def requires_confirmation(
        self, args: dict[str, Any]  # noqa: ARG002
    ) -> ConfirmationDetails | None:
        """Return approval details when the call must be confirmed."""
        return None

    def describe(self, args: dict[str, Any]) -> str:  # noqa: ARG002
        """One-line description of a call for display."""
        return self.definition.name

    @abstractmethod
    async def execute(
        self,
        args: dict[str, Any],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        """Run the tool body."""
