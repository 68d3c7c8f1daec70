"""Tool-call scheduler.

A batch moves through three phases: every call is validated, calls that need
confirmation are approved one at a time in request order, and approved calls
execute concurrently. Firing the cancellation token ends every call that is
not yet terminal with a synthesized cancellation response, so the model always
gets one response per request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from agent_orchestrator.cancellation import DEFAULT_CANCEL_REASON
from agent_orchestrator.errors import ApprovalDenied, CancellationError, SchedulerBusyError
from agent_orchestrator.scheduler.approval import ApprovalOutcome, ApprovalSession
from agent_orchestrator.scheduler.models import (
    ToolCallBatch,
    ToolCallResponse,
    ToolCallStatus,
    TrackedToolCall,
)
from agent_orchestrator.utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.scheduler.approval import ApprovalHandler
    from agent_orchestrator.scheduler.models import ToolCallRequest
    from agent_orchestrator.tools.base import Tool, ToolResult
    from agent_orchestrator.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def cancelled_response(request: ToolCallRequest, reason: str) -> ToolCallResponse:
    return ToolCallResponse(
        call_id=request.call_id,
        name=request.name,
        output=f"[Operation Cancelled] Reason: {reason}",
        error=reason,
        display="Cancelled",
    )


def error_response(request: ToolCallRequest, message: str) -> ToolCallResponse:
    return ToolCallResponse(
        call_id=request.call_id,
        name=request.name,
        output=f"Error: {message}",
        error=message,
        display=message,
    )


def result_response(request: ToolCallRequest, result: ToolResult) -> ToolCallResponse:
    return ToolCallResponse(
        call_id=request.call_id,
        name=request.name,
        output=result.llm_content,
        error=result.error,
        display=result.return_display,
        data=dict(result.data),
    )


class ToolCallScheduler:
    """Drive tool calls from validation to a terminal state."""

    def __init__(
        self,
        registry: ToolRegistry,
        approval_session: ApprovalSession | None = None,
        approval_handler: ApprovalHandler | None = None,
        observer: Callable[[list[TrackedToolCall]], None] | None = None,
    ) -> None:
        self._registry = registry
        self._session = approval_session or ApprovalSession()
        self._approval_handler = approval_handler
        self._observer = observer
        self._batch_listeners: list[Callable[[ToolCallBatch], None]] = []
        self._active: list[TrackedToolCall] = []
        self._busy = False

    @property
    def approval_session(self) -> ApprovalSession:
        return self._session

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def active_calls(self) -> list[TrackedToolCall]:
        """Snapshots of the calls in the current (or last) batch."""
        return [call.snapshot() for call in self._active]

    def add_batch_listener(self, listener: Callable[[ToolCallBatch], None]) -> None:
        self._batch_listeners.append(listener)

    def mark_submitted(self, call_ids: Iterable[str]) -> list[str]:
        """Flag responses of the current batch as delivered.

        Returns the ids that were not flagged before. Calls from earlier batches
        are no longer tracked and are ignored.
        """
        current = {call.call_id: call for call in self._active}
        newly_marked: list[str] = []
        for call_id in call_ids:
            call = current.get(call_id)
            if call is None or not call.status.is_terminal or call.response_submitted:
                continue
            call.response_submitted = True
            newly_marked.append(call_id)
        return newly_marked

    async def schedule(
        self, requests: Sequence[ToolCallRequest], cancel_token: CancelToken
    ) -> ToolCallBatch:
        """Run one batch to completion and return it with every call terminal."""
        if self._busy:
            msg = "Cannot schedule new tool calls while another batch is running"
            raise SchedulerBusyError(msg)
        self._busy = True
        batch_id = f"batch-{uuid4().hex[:12]}"
        calls = [TrackedToolCall(request=request) for request in requests]
        self._active = calls
        logger.debug("Scheduling %s with %d call(s)", batch_id, len(calls))
        self._publish()
        try:
            await self._run_phases(calls, cancel_token)
        finally:
            interrupted = self._interrupt(calls, cancel_token.reason or DEFAULT_CANCEL_REASON)
            for call in calls:
                if call.request.is_client_initiated:
                    call.response_submitted = True
            self._busy = False
            batch = ToolCallBatch(
                batch_id=batch_id,
                calls=tuple(call.snapshot() for call in calls),
                interrupted=interrupted,
            )
            self._notify_batch_complete(batch)
        return batch

    async def _run_phases(self, calls: list[TrackedToolCall], cancel_token: CancelToken) -> None:
        tools: dict[str, Tool] = {}
        for call in calls:
            tool = self._validate(call)
            if tool is not None:
                tools[call.call_id] = tool

        approved: list[TrackedToolCall] = []
        for call in calls:
            tool = tools.get(call.call_id)
            if tool is None:
                continue
            if cancel_token.cancelled:
                return
            try:
                if await self._approve(call, tool, cancel_token):
                    approved.append(call)
            except CancellationError:
                return

        if approved and not cancel_token.cancelled:
            await asyncio.gather(
                *(self._execute(call, tools[call.call_id], cancel_token) for call in approved)
            )

    def _validate(self, call: TrackedToolCall) -> Tool | None:
        tool = self._registry.get(call.name)
        if tool is None:
            self._resolve(
                call,
                ToolCallStatus.ERROR,
                error_response(call.request, f'Tool "{call.name}" not found in registry.'),
            )
            return None
        try:
            problem = tool.validate(call.request.args)
        except Exception as exc:
            logger.exception("Validation of %s raised", call.name)
            problem = str(exc) or type(exc).__name__
        if problem:
            self._resolve(call, ToolCallStatus.ERROR, error_response(call.request, problem))
            return None
        return tool

    async def _approve(
        self, call: TrackedToolCall, tool: Tool, cancel_token: CancelToken
    ) -> bool:
        try:
            details = tool.requires_confirmation(call.request.args)
        except Exception as exc:
            logger.exception("Confirmation check for %s raised", call.name)
            self._fail(call, exc)
            return False
        if details is None or self._session.is_approved(details.root_command):
            self._transition(call, ToolCallStatus.SCHEDULED)
            return True

        call.confirmation = details
        self._transition(call, ToolCallStatus.AWAITING_APPROVAL)
        if self._approval_handler is None:
            outcome = ApprovalOutcome.DENY
        else:
            try:
                outcome = await cancel_token.race(
                    self._approval_handler.request_approval(call.snapshot(), details)
                )
            except CancellationError:
                raise
            except Exception as exc:
                logger.exception("Approval request for %s failed", call.name)
                self._fail(call, exc)
                return False

        if outcome is ApprovalOutcome.DENY:
            denial = ApprovalDenied(f"User denied execution of {call.name}.")
            logger.info("Tool call %s denied", call.call_id)
            response = cancelled_response(call.request, str(denial))
            self._resolve(call, ToolCallStatus.CANCELLED, response)
            return False
        if outcome is ApprovalOutcome.PROCEED_ALWAYS:
            self._session.approve(details.root_command)
        self._transition(call, ToolCallStatus.SCHEDULED)
        return True

    async def _execute(self, call: TrackedToolCall, tool: Tool, cancel_token: CancelToken) -> None:
        self._transition(call, ToolCallStatus.EXECUTING)

        def _on_progress(text: str) -> None:
            if call.status is ToolCallStatus.EXECUTING:
                call.live_output = text
                self._publish()

        try:
            result = await cancel_token.race(
                tool.execute(call.request.args, cancel_token, _on_progress)
            )
        except CancellationError:
            return
        except Exception as exc:
            logger.exception("Tool %s failed", call.name)
            self._fail(call, exc)
            return
        if cancel_token.cancelled:
            # Tool noticed the token before the race did; report it as interrupted.
            return
        status = ToolCallStatus.ERROR if result.error else ToolCallStatus.SUCCESS
        self._resolve(call, status, result_response(call.request, result))

    def _fail(self, call: TrackedToolCall, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        self._resolve(call, ToolCallStatus.ERROR, error_response(call.request, message))

    def _interrupt(self, calls: list[TrackedToolCall], reason: str) -> tuple[str, ...]:
        interrupted: list[str] = []
        for call in calls:
            if call.status.is_terminal:
                continue
            interrupted.append(call.name)
            self._resolve(call, ToolCallStatus.CANCELLED, cancelled_response(call.request, reason))
        if interrupted:
            logger.info("Tool calls interrupted: %s", ", ".join(interrupted))
        return tuple(interrupted)

    def _transition(self, call: TrackedToolCall, status: ToolCallStatus) -> None:
        if call.status.is_terminal:
            return
        call.status = status
        call.updated_at = utc_now()
        self._publish()

    def _resolve(
        self, call: TrackedToolCall, status: ToolCallStatus, response: ToolCallResponse
    ) -> None:
        if call.status.is_terminal:
            return
        call.response = response
        call.live_output = None
        self._transition(call, status)
        logger.debug("Tool call %s -> %s", call.call_id, status.value)

    def _publish(self) -> None:
        if self._observer is None:
            return
        try:
            self._observer([call.snapshot() for call in self._active])
        except Exception:
            logger.exception("Tool call observer failed")

    def _notify_batch_complete(self, batch: ToolCallBatch) -> None:
        logger.info(
            "Batch %s complete: %d call(s), %d interrupted",
            batch.batch_id,
            len(batch.calls),
            len(batch.interrupted),
        )
        for listener in list(self._batch_listeners):
            try:
                listener(batch)
            except Exception:
                logger.exception("Batch listener failed")
