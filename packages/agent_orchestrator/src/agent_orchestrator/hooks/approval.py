"""Tool approval workflow hook.

Provides ToolApprovalHook for interrupting Strands tool calls that require user
approval. Answers of "always" are remembered in the shared ApprovalSession, so
the scheduler and Strands agents honor the same approvals.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from strands.hooks import (
    BeforeToolCallEvent,
    HookProvider,
    HookRegistry,
)

from agent_orchestrator.scheduler.approval import ApprovalOutcome, ApprovalSession

if TYPE_CHECKING:
    from collections.abc import Iterable


class ToolApprovalHook(HookProvider):
    """Interrupt tool calls for user approval."""

    def __init__(
        self,
        tools: Iterable[str],
        namespace: str = "orchestrator",
        session: ApprovalSession | None = None,
    ) -> None:
        """Initialize with an allowlist of tools requiring approval."""
        self._tools = set(tools)
        self._namespace = namespace
        self._session = session or ApprovalSession()

    @property
    def session(self) -> ApprovalSession:
        return self._session

    def register_hooks(self, registry: HookRegistry, **_kwargs: Any) -> None:
        """Register interrupt hook for tool calls."""
        registry.add_callback(BeforeToolCallEvent, self.approve)

    def approve(self, event: BeforeToolCallEvent) -> None:
        """Raise interrupts for approval on configured tools."""
        tool_name = event.tool_use.get("name")
        if tool_name not in self._tools or self._session.is_approved(tool_name):
            return
        interrupt_name = f"{self._namespace}-approval"
        answer = event.interrupt(interrupt_name, reason={"tool": tool_name})
        outcome = ApprovalOutcome.from_answer(str(answer or ""))
        if outcome is ApprovalOutcome.DENY:
            event.cancel_tool = "User denied tool execution"
        elif outcome is ApprovalOutcome.PROCEED_ALWAYS:
            self._session.approve(tool_name)
