"""Stream coordinator.

Consumes one model turn at a time, renders content as it arrives, batches the
turn's tool-call requests for the scheduler, and feeds the merged responses
back to the model as the next turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from agent_orchestrator.errors import CancellationError
from agent_orchestrator.streaming.events import ConversationState, TurnOutcome
from agent_orchestrator.streaming.observer import TurnObserver
from agent_orchestrator.streaming.splitting import split_content
from agent_orchestrator.telemetry import span

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.scheduler import ToolCallBatch, ToolCallRequest, ToolCallScheduler
    from agent_orchestrator.streaming.events import ModelBackend, StreamEvent

logger = logging.getLogger(__name__)

USER_CANCELLED_MESSAGE = "User cancelled the request."
DEFAULT_SPLIT_THRESHOLD = 2000
DEFAULT_MAX_TURNS = 50


@dataclass(frozen=True)
class TurnResult:
    """How a turn ended, the batch it produced, and whether responses went back."""

    outcome: TurnOutcome
    batch: ToolCallBatch | None = None
    resubmitted: bool = False
    error: str | None = None


class StreamCoordinator:
    """Run model turns and the tool-call resubmission loop for one conversation."""

    def __init__(
        self,
        backend: ModelBackend,
        scheduler: ToolCallScheduler,
        observer: TurnObserver | None = None,
        *,
        state: ConversationState | None = None,
        split_threshold: int = DEFAULT_SPLIT_THRESHOLD,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self._backend = backend
        self._scheduler = scheduler
        self._observer = observer or TurnObserver()
        self._state = state or ConversationState()
        self._split_threshold = split_threshold
        self._max_turns = max_turns
        scheduler.add_batch_listener(self._observer.on_batch_complete)

    @property
    def state(self) -> ConversationState:
        return self._state

    async def submit_query(self, text: str, cancel_token: CancelToken) -> TurnResult:
        """Send a user message and keep turning until the model stops calling tools."""
        self._state.add_user_message(text)
        for turn in range(1, self._max_turns + 1):
            result = await self.process_turn(
                self._backend.stream_turn(self._state, cancel_token), cancel_token
            )
            logger.info("Turn %d ended: %s", turn, result.outcome.value)
            if result.outcome is not TurnOutcome.COMPLETED or not result.resubmitted:
                return result
            if cancel_token.cancelled:
                return result
        message = f"Stopped after reaching the maximum of {self._max_turns} turns."
        logger.warning(message)
        self._observer.on_notice("error", message)
        return TurnResult(outcome=TurnOutcome.ERROR, error=message)

    async def process_turn(
        self, events: AsyncIterator[StreamEvent], cancel_token: CancelToken
    ) -> TurnResult:
        """Consume one turn's events, then schedule and resubmit its tool calls."""
        with span("orchestrator.turn") as current:
            outcome, requests, error = await self._consume(events, cancel_token)

            batch: ToolCallBatch | None = None
            if requests and outcome is TurnOutcome.ERROR:
                logger.warning(
                    "Dropping %d tool call request(s) after stream error", len(requests)
                )
            elif requests:
                batch = await self._scheduler.schedule(requests, cancel_token)
                if batch.interrupted or cancel_token.cancelled:
                    outcome = TurnOutcome.USER_CANCELLED

            if outcome is TurnOutcome.USER_CANCELLED:
                self._observer.on_notice("info", _cancel_notice(batch))
            elif outcome is TurnOutcome.ERROR:
                self._observer.on_notice("error", error or "Unknown error")

            resubmitted = await self.resubmit(batch) if batch is not None else False
            current.set_attribute("turn.outcome", outcome.value)
            current.set_attribute("turn.tool_calls", len(requests))
            return TurnResult(outcome=outcome, batch=batch, resubmitted=resubmitted, error=error)

    async def resubmit(self, batch: ToolCallBatch) -> bool:
        """Send the batch's model-issued responses back, at most once per call."""
        model_calls = batch.model_calls
        if not model_calls:
            return False
        newly_marked = set(self._scheduler.mark_submitted(call.call_id for call in model_calls))
        responses = [
            call.response
            for call in model_calls
            if call.call_id in newly_marked and call.response is not None
        ]
        if not responses:
            return False
        self._state.add_history("user", [response.to_part() for response in responses])
        await self._backend.continue_with_responses(self._state, responses)
        logger.debug("Resubmitted %d response(s) from %s", len(responses), batch.batch_id)
        return True

    async def _consume(
        self, events: AsyncIterator[StreamEvent], cancel_token: CancelToken
    ) -> tuple[TurnOutcome, list[ToolCallRequest], str | None]:
        buffer = ""
        text_parts: list[str] = []
        requests: list[ToolCallRequest] = []
        outcome = TurnOutcome.COMPLETED
        error: str | None = None
        try:
            while True:
                event = await cancel_token.race(anext(events, None))
                if event is None:
                    break
                if event.kind == "content":
                    text_parts.append(event.text)
                    finalized, buffer = split_content(buffer + event.text, self._split_threshold)
                    if finalized:
                        self._observer.on_content(finalized, final=True)
                    self._observer.on_content(buffer, final=False)
                elif event.kind == "thought":
                    self._observer.on_thought(event.text)
                elif event.kind == "tool_call_request" and event.request is not None:
                    requests.append(event.request)
                elif event.kind == "tool_call_response" and event.response is not None:
                    self._state.add_history("user", [event.response.to_part()])
                elif event.kind == "user_cancelled":
                    cancel_token.cancel(USER_CANCELLED_MESSAGE)
                    outcome = TurnOutcome.USER_CANCELLED
                    break
                elif event.kind == "error":
                    outcome = TurnOutcome.ERROR
                    error = event.text
                    break
                elif event.kind == "chat_compressed":
                    self._observer.on_chat_compressed(event.data)
                elif event.kind == "usage_metadata":
                    self._observer.on_usage(event.data)
        except CancellationError:
            outcome = TurnOutcome.USER_CANCELLED
        except Exception as exc:
            logger.exception("Model stream failed")
            outcome = TurnOutcome.ERROR
            error = str(exc) or type(exc).__name__
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        if buffer:
            self._observer.on_content(buffer, final=True)
        self._record_model_message("".join(text_parts), requests)
        return outcome, requests, error

    def _record_model_message(self, text: str, requests: list[ToolCallRequest]) -> None:
        parts: list[dict] = []
        if text:
            parts.append({"text": text})
        parts.extend(
            {"functionCall": {"id": request.call_id, "name": request.name, "args": request.args}}
            for request in requests
        )
        if parts:
            self._state.add_history("model", parts)


def _cancel_notice(batch: ToolCallBatch | None) -> str:
    if batch is not None and batch.interrupted:
        return f"Request cancelled. Tools interrupted: {', '.join(batch.interrupted)}"
    return USER_CANCELLED_MESSAGE
