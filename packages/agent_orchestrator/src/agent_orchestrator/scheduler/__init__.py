"""Tool-call scheduling: request models, approval session, and the scheduler."""

from agent_orchestrator.scheduler.approval import ApprovalHandler, ApprovalOutcome, ApprovalSession
from agent_orchestrator.scheduler.models import (
    ToolCallBatch,
    ToolCallRequest,
    ToolCallResponse,
    ToolCallStatus,
    TrackedToolCall,
    new_call_id,
)
from agent_orchestrator.scheduler.scheduler import ToolCallScheduler, cancelled_response

__all__ = [
    "ApprovalHandler",
    "ApprovalOutcome",
    "ApprovalSession",
    "ToolCallBatch",
    "ToolCallRequest",
    "ToolCallResponse",
    "ToolCallScheduler",
    "ToolCallStatus",
    "TrackedToolCall",
    "cancelled_response",
    "new_call_id",
]
