"""Sub-agent task models, process spawning, and the bounded executor."""

from agent_orchestrator.subagents.executor import SubAgentExecutor
from agent_orchestrator.subagents.models import (
    ExecutionSummary,
    ExecutorEvent,
    ExecutorStatus,
    RetryPolicy,
    SubAgentParams,
    SubAgentResult,
    SubAgentTask,
    TaskPriority,
    TaskStatus,
    build_prompt,
)
from agent_orchestrator.subagents.process import (
    ProcessHandle,
    ProcessOutcome,
    ProcessSpawner,
    SubprocessSpawner,
)

__all__ = [
    "ExecutionSummary",
    "ExecutorEvent",
    "ExecutorStatus",
    "ProcessHandle",
    "ProcessOutcome",
    "ProcessSpawner",
    "RetryPolicy",
    "SubAgentExecutor",
    "SubAgentParams",
    "SubAgentResult",
    "SubAgentTask",
    "SubprocessSpawner",
    "TaskPriority",
    "TaskStatus",
    "build_prompt",
]
