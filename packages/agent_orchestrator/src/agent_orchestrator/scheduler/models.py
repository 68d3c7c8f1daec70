"""Tool-call request, tracking, and batch models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from agent_orchestrator.utils import utc_now

if TYPE_CHECKING:
    from agent_orchestrator.tools.base import ConfirmationDetails


class ToolCallStatus(str, Enum):
    VALIDATING = "validating"
    AWAITING_APPROVAL = "awaiting_approval"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {ToolCallStatus.SUCCESS, ToolCallStatus.ERROR, ToolCallStatus.CANCELLED}


def new_call_id(name: str) -> str:
    return f"{name}-{uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model or issued locally."""

    call_id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    is_client_initiated: bool = False

    @classmethod
    def create(
        cls, name: str, args: dict[str, Any] | None = None, *, is_client_initiated: bool = False
    ) -> ToolCallRequest:
        return cls(
            call_id=new_call_id(name),
            name=name,
            args=dict(args or {}),
            is_client_initiated=is_client_initiated,
        )


@dataclass(frozen=True)
class ToolCallResponse:
    """Terminal payload of a tool call, sent back to the model."""

    call_id: str
    name: str
    output: str
    error: str | None = None
    display: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_part(self) -> dict[str, Any]:
        """Function-response part for the next model turn."""
        response: dict[str, Any] = {"output": self.output}
        if self.error:
            response["error"] = self.error
        return {"functionResponse": {"id": self.call_id, "name": self.name, "response": response}}


@dataclass
class TrackedToolCall:
    """Scheduler-owned lifecycle record of one tool call."""

    request: ToolCallRequest
    status: ToolCallStatus = ToolCallStatus.VALIDATING
    response: ToolCallResponse | None = None
    response_submitted: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    live_output: str | None = None
    confirmation: ConfirmationDetails | None = None

    @property
    def call_id(self) -> str:
        return self.request.call_id

    @property
    def name(self) -> str:
        return self.request.name

    def snapshot(self) -> TrackedToolCall:
        """Copy safe to hand to observers."""
        return replace(self)


@dataclass(frozen=True)
class ToolCallBatch:
    """All tool calls from one model turn, each in a terminal state."""

    batch_id: str
    calls: tuple[TrackedToolCall, ...]
    interrupted: tuple[str, ...] = ()

    @property
    def model_calls(self) -> list[TrackedToolCall]:
        return [call for call in self.calls if not call.request.is_client_initiated]

    @property
    def responses(self) -> list[ToolCallResponse]:
        return [call.response for call in self.calls if call.response is not None]

    @property
    def all_cancelled(self) -> bool:
        return bool(self.calls) and all(
            call.status is ToolCallStatus.CANCELLED for call in self.calls
        )
