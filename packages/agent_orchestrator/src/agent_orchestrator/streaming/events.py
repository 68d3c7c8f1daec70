"""Model stream events and conversation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.scheduler.models import ToolCallRequest, ToolCallResponse

StreamEventKind = Literal[
    "thought",
    "content",
    "tool_call_request",
    "tool_call_response",
    "user_cancelled",
    "error",
    "chat_compressed",
    "usage_metadata",
]


@dataclass(frozen=True)
class StreamEvent:
    """One event of a model turn.

    Kinds:
    - "thought": reasoning summary, ``text``
    - "content": content delta, ``text``
    - "tool_call_request": ``request``
    - "tool_call_response": ``response`` produced by the backend itself
    - "user_cancelled": the user aborted the turn
    - "error": ``text`` holds the error message
    - "chat_compressed": ``data`` holds token counts before/after
    - "usage_metadata": ``data`` holds token usage
    """

    kind: StreamEventKind
    text: str = ""
    request: ToolCallRequest | None = None
    response: ToolCallResponse | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def thought(cls, text: str) -> StreamEvent:
        return cls(kind="thought", text=text)

    @classmethod
    def content(cls, text: str) -> StreamEvent:
        return cls(kind="content", text=text)

    @classmethod
    def tool_call_request(cls, request: ToolCallRequest) -> StreamEvent:
        return cls(kind="tool_call_request", request=request)

    @classmethod
    def tool_call_response(cls, response: ToolCallResponse) -> StreamEvent:
        return cls(kind="tool_call_response", response=response)

    @classmethod
    def user_cancelled(cls) -> StreamEvent:
        return cls(kind="user_cancelled")

    @classmethod
    def error(cls, message: str) -> StreamEvent:
        return cls(kind="error", text=message)

    @classmethod
    def chat_compressed(cls, original_tokens: int, new_tokens: int) -> StreamEvent:
        return cls(
            kind="chat_compressed",
            data={"original_token_count": original_tokens, "new_token_count": new_tokens},
        )

    @classmethod
    def usage_metadata(cls, **usage: int) -> StreamEvent:
        return cls(kind="usage_metadata", data=dict(usage))


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    USER_CANCELLED = "user_cancelled"
    ERROR = "error"


@dataclass
class ConversationState:
    """Messages exchanged with the model backend, in order.

    ``tools`` holds the function declarations the backend offers the model.
    """

    messages: list[dict[str, Any]] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)

    def add_user_message(self, text: str) -> None:
        self.messages.append({"role": "user", "parts": [{"text": text}]})

    def add_model_message(self, text: str) -> None:
        self.messages.append({"role": "model", "parts": [{"text": text}]})

    def add_history(self, role: str, parts: list[dict[str, Any]]) -> None:
        self.messages.append({"role": role, "parts": list(parts)})


class ModelBackend(Protocol):
    """Streams model turns and accepts tool responses for the next turn."""

    def stream_turn(
        self, state: ConversationState, cancel_token: CancelToken
    ) -> AsyncIterator[StreamEvent]: ...

    async def continue_with_responses(
        self, state: ConversationState, responses: list[ToolCallResponse]
    ) -> None: ...
