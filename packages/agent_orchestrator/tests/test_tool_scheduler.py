from __future__ import annotations

import asyncio
from typing import Any

import pytest

from agent_orchestrator.cancellation import CancelToken
from agent_orchestrator.errors import SchedulerBusyError
from agent_orchestrator.scheduler import (
    ApprovalOutcome,
    ApprovalSession,
    ToolCallRequest,
    ToolCallScheduler,
    ToolCallStatus,
)
from agent_orchestrator.tools import (
    ConfirmationDetails,
    Tool,
    ToolDefinition,
    ToolRegistry,
    ToolResult,
)


class EchoTool(Tool):
    definition = ToolDefinition(
        name="echo",
        description="Echo the given text.",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    )

    def validate(self, args: dict[str, Any]) -> str | None:
        return None if "text" in args else "text is required"

    async def execute(self, args, cancel_token, on_progress=None) -> ToolResult:
        if on_progress is not None:
            on_progress("echoing")
        return ToolResult(llm_content=args["text"], return_display="echoed")


class GuardedTool(EchoTool):
    definition = ToolDefinition(name="guarded", description="Echo after confirmation.")

    def requires_confirmation(self, args: dict[str, Any]) -> ConfirmationDetails | None:
        return ConfirmationDetails(title="Confirm", prompt="Run guarded", root_command="guarded")


class BlockingTool(Tool):
    def __init__(self, name: str) -> None:
        self.definition = ToolDefinition(name=name, description="Wait until cancelled.")
        self.started = asyncio.Event()

    async def execute(self, args, cancel_token, on_progress=None) -> ToolResult:
        self.started.set()
        await asyncio.Event().wait()
        return ToolResult(llm_content="unreachable")


class FailingTool(Tool):
    definition = ToolDefinition(name="failing", description="Always raises.")

    async def execute(self, args, cancel_token, on_progress=None) -> ToolResult:
        raise RuntimeError("kaboom")


class ErrorResultTool(Tool):
    definition = ToolDefinition(name="error_result", description="Reports an error result.")

    async def execute(self, args, cancel_token, on_progress=None) -> ToolResult:
        return ToolResult(llm_content="could not do it", error="disk full")


class ScriptedApproval:
    def __init__(self, *answers: ApprovalOutcome) -> None:
        self.answers = list(answers)
        self.asked: list[str] = []

    async def request_approval(self, call, details) -> ApprovalOutcome:
        assert call.status is ToolCallStatus.AWAITING_APPROVAL
        self.asked.append(details.root_command)
        return self.answers.pop(0)


def _scheduler(*tools: Tool, **kwargs) -> ToolCallScheduler:
    return ToolCallScheduler(ToolRegistry(tools), **kwargs)


@pytest.mark.asyncio
async def test_scheduler_executes_valid_calls() -> None:
    updates: list[list[str]] = []
    scheduler = _scheduler(
        EchoTool(), observer=lambda calls: updates.append([call.status.value for call in calls])
    )
    request = ToolCallRequest.create("echo", {"text": "hi"})

    batch = await scheduler.schedule([request], CancelToken())

    (call,) = batch.calls
    assert call.status is ToolCallStatus.SUCCESS
    assert call.response is not None
    assert call.response.output == "hi"
    assert call.response.to_part() == {
        "functionResponse": {"id": request.call_id, "name": "echo", "response": {"output": "hi"}}
    }
    assert ["executing"] in updates
    assert updates[-1] == ["success"]
    assert not scheduler.is_busy


@pytest.mark.asyncio
async def test_scheduler_reports_unknown_and_invalid_calls() -> None:
    scheduler = _scheduler(EchoTool())

    batch = await scheduler.schedule(
        [ToolCallRequest.create("missing"), ToolCallRequest.create("echo", {})], CancelToken()
    )

    unknown, invalid = batch.calls
    assert unknown.status is ToolCallStatus.ERROR
    assert unknown.response.output == 'Error: Tool "missing" not found in registry.'
    assert invalid.status is ToolCallStatus.ERROR
    assert invalid.response.error == "text is required"


@pytest.mark.asyncio
async def test_scheduler_turns_tool_failures_into_error_responses() -> None:
    scheduler = _scheduler(FailingTool(), ErrorResultTool())

    batch = await scheduler.schedule(
        [ToolCallRequest.create("failing"), ToolCallRequest.create("error_result")],
        CancelToken(),
    )

    failing, error_result = batch.calls
    assert failing.status is ToolCallStatus.ERROR
    assert failing.response.output == "Error: kaboom"
    assert error_result.status is ToolCallStatus.ERROR
    assert error_result.response.error == "disk full"
    assert error_result.response.output == "could not do it"


@pytest.mark.asyncio
async def test_scheduler_denies_without_handler() -> None:
    scheduler = _scheduler(GuardedTool())

    batch = await scheduler.schedule(
        [ToolCallRequest.create("guarded", {"text": "x"})], CancelToken()
    )

    (call,) = batch.calls
    assert call.status is ToolCallStatus.CANCELLED
    assert call.response.error == "User denied execution of guarded."
    assert batch.interrupted == ()


@pytest.mark.asyncio
async def test_scheduler_remembers_proceed_always() -> None:
    handler = ScriptedApproval(ApprovalOutcome.PROCEED_ALWAYS)
    session = ApprovalSession()
    scheduler = _scheduler(GuardedTool(), approval_session=session, approval_handler=handler)

    first = await scheduler.schedule(
        [ToolCallRequest.create("guarded", {"text": "one"})], CancelToken()
    )
    second = await scheduler.schedule(
        [ToolCallRequest.create("guarded", {"text": "two"})], CancelToken()
    )

    assert first.calls[0].status is ToolCallStatus.SUCCESS
    assert second.calls[0].status is ToolCallStatus.SUCCESS
    assert handler.asked == ["guarded"]
    assert session.is_approved("guarded")


@pytest.mark.asyncio
async def test_scheduler_approves_in_request_order() -> None:
    handler = ScriptedApproval(ApprovalOutcome.PROCEED_ONCE, ApprovalOutcome.DENY)
    scheduler = _scheduler(GuardedTool(), EchoTool(), approval_handler=handler)

    batch = await scheduler.schedule(
        [
            ToolCallRequest.create("guarded", {"text": "a"}),
            ToolCallRequest.create("echo", {"text": "b"}),
            ToolCallRequest.create("guarded", {"text": "c"}),
        ],
        CancelToken(),
    )

    assert [call.status for call in batch.calls] == [
        ToolCallStatus.SUCCESS,
        ToolCallStatus.SUCCESS,
        ToolCallStatus.CANCELLED,
    ]
    assert len(batch.responses) == 3


@pytest.mark.asyncio
async def test_scheduler_cancellation_responds_to_every_call() -> None:
    first, second = BlockingTool("first_wait"), BlockingTool("second_wait")
    scheduler = _scheduler(first, second)
    batches = []
    scheduler.add_batch_listener(batches.append)
    token = CancelToken()
    requests = [ToolCallRequest.create("first_wait"), ToolCallRequest.create("second_wait")]

    pending = asyncio.ensure_future(scheduler.schedule(requests, token))
    await first.started.wait()
    await second.started.wait()
    assert scheduler.is_busy
    token.cancel("Stop now.")
    batch = await pending

    assert batch.interrupted == ("first_wait", "second_wait")
    assert [call.status for call in batch.calls] == [ToolCallStatus.CANCELLED] * 2
    assert [response.output for response in batch.responses] == [
        "[Operation Cancelled] Reason: Stop now."
    ] * 2
    assert batches == [batch]
    assert batch.all_cancelled


@pytest.mark.asyncio
async def test_scheduler_cancels_calls_awaiting_approval() -> None:
    token = CancelToken()

    class StalledApproval:
        async def request_approval(self, call, details) -> ApprovalOutcome:
            token.cancel()
            await asyncio.Event().wait()
            return ApprovalOutcome.PROCEED_ONCE

    scheduler = _scheduler(GuardedTool(), EchoTool(), approval_handler=StalledApproval())

    batch = await scheduler.schedule(
        [
            ToolCallRequest.create("guarded", {"text": "a"}),
            ToolCallRequest.create("echo", {"text": "b"}),
        ],
        token,
    )

    assert batch.interrupted == ("guarded", "echo")
    assert batch.calls[0].response.error == "Operation cancelled by user."


@pytest.mark.asyncio
async def test_scheduler_rejects_overlapping_batches() -> None:
    blocking = BlockingTool("wait")
    scheduler = _scheduler(blocking)
    token = CancelToken()

    pending = asyncio.ensure_future(scheduler.schedule([ToolCallRequest.create("wait")], token))
    await blocking.started.wait()
    with pytest.raises(SchedulerBusyError):
        await scheduler.schedule([ToolCallRequest.create("wait")], CancelToken())
    token.cancel()
    await pending


@pytest.mark.asyncio
async def test_client_initiated_calls_are_marked_submitted() -> None:
    scheduler = _scheduler(EchoTool())
    local = ToolCallRequest.create("echo", {"text": "local"}, is_client_initiated=True)
    remote = ToolCallRequest.create("echo", {"text": "remote"})

    batch = await scheduler.schedule([local, remote], CancelToken())

    assert [call.response_submitted for call in batch.calls] == [True, False]
    assert batch.model_calls[0].call_id == remote.call_id
    assert scheduler.mark_submitted([local.call_id, remote.call_id]) == [remote.call_id]
    assert scheduler.mark_submitted([remote.call_id]) == []


class BrokenConfirmationTool(EchoTool):
    definition = ToolDefinition(name="broken", description="Confirmation check raises.")

    def requires_confirmation(self, args: dict[str, Any]) -> ConfirmationDetails | None:
        return ConfirmationDetails(title="Confirm", prompt="Edit", root_command=args["path"])


class RaisingApproval:
    async def request_approval(self, call, details) -> ApprovalOutcome:
        raise ConnectionError("approval channel closed")


@pytest.mark.asyncio
async def test_confirmation_check_errors_become_error_responses() -> None:
    scheduler = _scheduler(BrokenConfirmationTool(), EchoTool())
    broken = ToolCallRequest.create("broken", {"text": "x"})
    echo = ToolCallRequest.create("echo", {"text": "still runs"})

    batch = await scheduler.schedule([broken, echo], CancelToken())

    failed, succeeded = batch.calls
    assert failed.status is ToolCallStatus.ERROR
    assert failed.response.output == "Error: 'path'"
    assert succeeded.status is ToolCallStatus.SUCCESS
    assert batch.interrupted == ()


@pytest.mark.asyncio
async def test_approval_handler_errors_become_error_responses() -> None:
    scheduler = _scheduler(GuardedTool(), approval_handler=RaisingApproval())

    request = ToolCallRequest.create("guarded", {"text": "x"})

    batch = await scheduler.schedule([request], CancelToken())

    (call,) = batch.calls
    assert call.status is ToolCallStatus.ERROR
    assert call.response.error == "approval channel closed"
    assert not scheduler.is_busy


@pytest.mark.asyncio
async def test_earlier_batches_are_not_tracked_for_submission() -> None:
    scheduler = _scheduler(EchoTool())
    first = ToolCallRequest.create("echo", {"text": "one"})
    second = ToolCallRequest.create("echo", {"text": "two"})

    await scheduler.schedule([first], CancelToken())
    await scheduler.schedule([second], CancelToken())

    assert scheduler.mark_submitted([first.call_id, second.call_id]) == [second.call_id]
