"""Sub-agent task models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_orchestrator.utils import seconds_between

MIN_TASK_LENGTH = 10
MIN_TIMEOUT = 5
MAX_TIMEOUT = 300


class TaskPriority(str, Enum):
    """Scheduling priority for pending tasks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {TaskPriority.LOW: 1, TaskPriority.MEDIUM: 2, TaskPriority.HIGH: 3}


class TaskStatus(str, Enum):
    """Lifecycle of a sub-agent task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}


class SubAgentParams(BaseModel):
    """Parameters of a single delegated sub-agent run."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    task: str
    context: str | None = None
    timeout: float | None = Field(default=None, ge=MIN_TIMEOUT, le=MAX_TIMEOUT)
    priority: TaskPriority = TaskPriority.MEDIUM
    working_directory: str | None = Field(default=None, alias="workingDirectory")

    @field_validator("task")
    @classmethod
    def _check_task(cls, value: str) -> str:
        if not value.strip():
            msg = "Task description cannot be empty."
            raise ValueError(msg)
        if len(value) < MIN_TASK_LENGTH:
            msg = f"Task description must be at least {MIN_TASK_LENGTH} characters long."
            raise ValueError(msg)
        return value

    @field_validator("working_directory")
    @classmethod
    def _check_working_directory(cls, value: str | None) -> str | None:
        if value and PurePath(value).is_absolute():
            msg = (
                "Working directory cannot be absolute. "
                "Must be relative to the project root directory."
            )
            raise ValueError(msg)
        return value or None


def build_prompt(params: SubAgentParams) -> str:
    """Build the prompt handed to the sub-agent process."""
    prompt = params.task
    if params.context:
        prompt = f"Context: {params.context}\n\nTask: {prompt}"
    if params.working_directory:
        prompt += f"\n\nNote: Execute this task in the directory: {params.working_directory}"
    return prompt


@dataclass
class SubAgentTask:
    """A queued or running sub-agent task, owned by the executor."""

    id: str
    params: SubAgentParams
    timeout: float
    sequence: int
    created_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output: str | None = None
    error: str | None = None
    timed_out: bool = False
    attempt: int = 1
    retry_of: str | None = None

    @property
    def priority(self) -> TaskPriority:
        return self.params.priority

    @property
    def duration(self) -> float:
        return seconds_between(self.started_at, self.completed_at)

    def to_result(self) -> SubAgentResult:
        return SubAgentResult(
            task_id=self.id,
            task=self.params.task,
            status=self.status,
            output=self.output or "",
            error=self.error,
            duration=self.duration,
            attempt=self.attempt,
            timed_out=self.timed_out,
        )


@dataclass(frozen=True)
class SubAgentResult:
    """Terminal outcome of a sub-agent task."""

    task_id: str
    task: str
    status: TaskStatus
    output: str = ""
    error: str | None = None
    duration: float = 0.0
    attempt: int = 1
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.COMPLETED


@dataclass(frozen=True)
class ExecutionSummary:
    """Counts and timings over every task known to an executor."""

    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    cancelled_tasks: int = 0
    total_execution_time: float = 0.0
    average_task_time: float = 0.0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "cancelled_tasks": self.cancelled_tasks,
            "total_execution_time": round(self.total_execution_time, 3),
            "average_task_time": round(self.average_task_time, 3),
        }


@dataclass(frozen=True)
class ExecutorStatus:
    """Point-in-time snapshot of executor occupancy."""

    running: int
    pending: int
    completed: int
    failed: int
    cancelled: int
    max_concurrent: int


@dataclass(frozen=True)
class RetryPolicy:
    """Resubmission of failed tasks; disabled unless configured."""

    enabled: bool = False
    max_retries: int = 2


ExecutorEventType = Literal[
    "task_added",
    "task_started",
    "task_progress",
    "task_completed",
    "task_failed",
    "task_cancelled",
    "task_retried",
    "tasks_cleared",
]


@dataclass(frozen=True)
class ExecutorEvent:
    """Notification published by the executor to its listeners."""

    type: ExecutorEventType
    task: SubAgentTask | None = None
    text: str | None = None
    retry_task_id: str | None = None
    count: int = 0
