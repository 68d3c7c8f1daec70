from dataclasses import dataclass, field
from typing import Any

from agent_orchestrator.hooks import ToolApprovalHook
from agent_orchestrator.scheduler import ApprovalSession


@dataclass
class FakeEvent:
    tool_use: dict[str, Any]
    answer: str = "n"
    cancel_tool: str | None = None
    interrupts: list[str] = field(default_factory=list)

    def interrupt(self, name: str, reason: dict[str, Any]) -> str:
        _ = reason
        self.interrupts.append(name)
        return self.answer


def test_tool_approval_hook_blocks() -> None:
    hook = ToolApprovalHook(["spawn_sub_agent"], namespace="test")
    event = FakeEvent(tool_use={"name": "spawn_sub_agent", "input": {}})

    hook.approve(event)

    assert event.cancel_tool == "User denied tool execution"
    assert event.interrupts == ["test-approval"]


def test_tool_approval_hook_ignores_other_tools() -> None:
    hook = ToolApprovalHook(["spawn_sub_agent"])
    event = FakeEvent(tool_use={"name": "aggregate_results", "input": {}})

    hook.approve(event)

    assert event.cancel_tool is None
    assert event.interrupts == []


def test_tool_approval_hook_remembers_always() -> None:
    session = ApprovalSession()
    hook = ToolApprovalHook(["delegate_task"], session=session)
    first = FakeEvent(tool_use={"name": "delegate_task"}, answer="always")
    second = FakeEvent(tool_use={"name": "delegate_task"})

    hook.approve(first)
    hook.approve(second)

    assert first.cancel_tool is None
    assert second.interrupts == []
    assert second.cancel_tool is None
    assert session.is_approved("delegate_task")


def test_tool_approval_hook_allows_once() -> None:
    hook = ToolApprovalHook(["delegate_task"])
    event = FakeEvent(tool_use={"name": "delegate_task"}, answer="Yes")

    hook.approve(event)

    assert event.cancel_tool is None
    assert not hook.session.is_approved("delegate_task")
