"""Agent orchestration core.

Coordinates one conversational turn with a model: streamed content is relayed
to the user, tool-call requests are approved and executed by the scheduler,
and results are sent back to the model. Sub-agent tools run work in isolated
child processes with bounded concurrency, optionally split across subtasks.
"""

from agent_orchestrator.aggregation import AggregationRequest, ResultSource, aggregate
from agent_orchestrator.cancellation import CancelToken
from agent_orchestrator.config import Settings, load_settings
from agent_orchestrator.delegation import (
    AggregatedReport,
    DelegationRequest,
    TaskDelegator,
    make_executor_factory,
)
from agent_orchestrator.errors import (
    ApprovalDenied,
    CancellationError,
    ExecutionError,
    OrchestratorError,
    SchedulerBusyError,
    SubAgentTimeoutError,
    ValidationError,
)
from agent_orchestrator.hooks import ToolApprovalHook
from agent_orchestrator.runtime import OrchestratorRuntime
from agent_orchestrator.scheduler import (
    ApprovalOutcome,
    ApprovalSession,
    ToolCallBatch,
    ToolCallRequest,
    ToolCallResponse,
    ToolCallScheduler,
    ToolCallStatus,
)
from agent_orchestrator.streaming import (
    ConversationState,
    ModelBackend,
    StreamCoordinator,
    StreamEvent,
    TurnObserver,
    TurnOutcome,
    TurnResult,
)
from agent_orchestrator.subagents import (
    SubAgentExecutor,
    SubAgentParams,
    SubAgentResult,
    SubprocessSpawner,
    TaskPriority,
    TaskStatus,
)
from agent_orchestrator.tools import Tool, ToolRegistry, ToolResult, build_default_registry

__all__ = [
    "AggregatedReport",
    "AggregationRequest",
    "ApprovalDenied",
    "ApprovalOutcome",
    "ApprovalSession",
    "CancelToken",
    "CancellationError",
    "ConversationState",
    "DelegationRequest",
    "ExecutionError",
    "ModelBackend",
    "OrchestratorError",
    "OrchestratorRuntime",
    "ResultSource",
    "SchedulerBusyError",
    "Settings",
    "StreamCoordinator",
    "StreamEvent",
    "SubAgentExecutor",
    "SubAgentParams",
    "SubAgentResult",
    "SubAgentTimeoutError",
    "SubprocessSpawner",
    "TaskDelegator",
    "TaskPriority",
    "TaskStatus",
    "Tool",
    "ToolApprovalHook",
    "ToolCallBatch",
    "ToolCallRequest",
    "ToolCallResponse",
    "ToolCallScheduler",
    "ToolCallStatus",
    "ToolRegistry",
    "ToolResult",
    "TurnObserver",
    "TurnOutcome",
    "TurnResult",
    "ValidationError",
    "aggregate",
    "build_default_registry",
    "load_settings",
    "make_executor_factory",
]
