"""Delegation request and report models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from agent_orchestrator.subagents.models import (
    MAX_TIMEOUT,
    MIN_TIMEOUT,
    ExecutionSummary,
    ExecutorStatus,
    SubAgentParams,
    SubAgentResult,
    TaskPriority,
    TaskStatus,
)

MIN_SUBTASK_LENGTH = 5
MAX_SUBTASKS = 10

ExecutionMode = Literal["parallel", "sequential"]


class SubtaskSpec(BaseModel):
    """One entry of a delegation's subtask list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    task: str
    context: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    timeout: float | None = Field(default=None, ge=MIN_TIMEOUT, le=MAX_TIMEOUT)
    working_directory: str | None = Field(
        default=None,
        validation_alias=AliasChoices("workingDirectory", "working_directory"),
    )

    @field_validator("task")
    @classmethod
    def _check_task(cls, value: str) -> str:
        if not value.strip():
            msg = "description cannot be empty."
            raise ValueError(msg)
        if len(value) < MIN_SUBTASK_LENGTH:
            msg = f"description must be at least {MIN_SUBTASK_LENGTH} characters long."
            raise ValueError(msg)
        return value

    @field_validator("working_directory")
    @classmethod
    def _check_working_directory(cls, value: str | None) -> str | None:
        if value and PurePath(value).is_absolute():
            msg = "Working directory must be relative to the project root directory."
            raise ValueError(msg)
        return value or None

    def to_params(self) -> SubAgentParams:
        # Subtasks allow shorter task text than a direct spawn; fields are already checked.
        return SubAgentParams.model_construct(
            task=self.task,
            context=self.context,
            timeout=self.timeout,
            priority=self.priority,
            working_directory=self.working_directory,
        )


class DelegationRequest(BaseModel):
    """Split of a main task into ordered subtasks."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    main_task: str = Field(alias="mainTask")
    subtasks: list[SubtaskSpec]
    execution_mode: ExecutionMode = Field(default="parallel", alias="executionMode")
    max_concurrent_agents: int = Field(default=3, ge=1, le=5, alias="maxConcurrentAgents")
    wait_for_completion: bool = Field(default=True, alias="waitForCompletion")
    aggregate_results: bool = Field(default=True, alias="aggregateResults")

    @field_validator("main_task")
    @classmethod
    def _check_main_task(cls, value: str) -> str:
        if not value.strip():
            msg = "Main task description cannot be empty."
            raise ValueError(msg)
        return value

    @field_validator("subtasks")
    @classmethod
    def _check_subtasks(cls, value: list[SubtaskSpec]) -> list[SubtaskSpec]:
        if not value:
            msg = "At least one subtask must be provided."
            raise ValueError(msg)
        if len(value) > MAX_SUBTASKS:
            msg = f"Maximum of {MAX_SUBTASKS} subtasks allowed per delegation."
            raise ValueError(msg)
        return value

    def describe(self) -> str:
        text = (
            f'Delegate "{self.main_task}" into {len(self.subtasks)} subtasks '
            f"({self.execution_mode} execution)"
        )
        if self.execution_mode == "parallel":
            text += f" [max {self.max_concurrent_agents} concurrent]"
        return text


@dataclass(frozen=True)
class ReportEntry:
    """Outcome of the subtask at ``index`` (1-based input position)."""

    index: int
    task: str
    status: TaskStatus | None
    output: str = ""
    error: str | None = None
    duration: float = 0.0
    task_id: str | None = None
    attempts: int = 0

    @classmethod
    def from_result(cls, index: int, result: SubAgentResult) -> ReportEntry:
        return cls(
            index=index,
            task=result.task,
            status=result.status,
            output=result.output,
            error=result.error,
            duration=result.duration,
            task_id=result.task_id,
            attempts=result.attempt,
        )

    @classmethod
    def not_started(cls, index: int, task: str) -> ReportEntry:
        return cls(
            index=index, task=task, status=None, error="Not started: delegation was cancelled."
        )

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @property
    def status_label(self) -> str:
        return self.status.value if self.status is not None else "not_started"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "task": self.task,
            "status": self.status_label,
            "output": self.output,
            "error": self.error,
            "duration": round(self.duration, 3),
            "task_id": self.task_id,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class AggregatedReport:
    """Delegation outcome with entries in the original subtask order."""

    main_task: str
    mode: ExecutionMode
    total: int
    entries: tuple[ReportEntry, ...] = ()
    summary: ExecutionSummary = field(default_factory=ExecutionSummary)
    aggregated: bool = True
    background: bool = False
    status: ExecutorStatus | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for entry in self.entries if entry.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for entry in self.entries if entry.status is TaskStatus.FAILED)

    @property
    def cancelled(self) -> int:
        return sum(1 for entry in self.entries if entry.status is TaskStatus.CANCELLED)

    @property
    def not_started(self) -> int:
        return sum(1 for entry in self.entries if entry.status is None)

    def headline(self) -> str:
        if self.background:
            return f"Task delegation started with {self.total} subtasks"
        if self.succeeded == self.total:
            return f"All {self.total} subtasks completed successfully"
        return f"{self.succeeded} of {self.total} subtasks succeeded"

    def to_markdown(self) -> str:
        if self.background:
            running = self.status.running if self.status else 0
            pending = self.status.pending if self.status else 0
            return (
                f"Task delegation started: {self.main_task}\n\n"
                f"Status: {running} running, {pending} pending\n"
                "Execution continuing in background..."
            )

        lines = [
            "## Task Delegation Results",
            "",
            f"**Main Task:** {self.main_task}",
            "",
            "**Summary:**",
            f"- Successful: {self.succeeded}/{self.total}",
        ]
        if self.failed:
            lines.append(f"- Failed: {self.failed}")
        if self.cancelled:
            lines.append(f"- Cancelled: {self.cancelled}")
        if self.not_started:
            lines.append(f"- Not started: {self.not_started}")
        lines.append(f"- Total Time: {self.summary.total_execution_time:.1f}s")
        if self.summary.average_task_time > 0:
            lines.append(f"- Average Task Time: {self.summary.average_task_time:.1f}s")
        lines.append("")

        if self.aggregated:
            lines.extend(["## Aggregated Results", ""])
            for entry in self.entries:
                lines.extend([f"### Subtask {entry.index}: {entry.task}", ""])
                if entry.succeeded:
                    lines.append(entry.output or "(no output)")
                else:
                    lines.append(f"**{entry.status_label}:** {entry.error or 'no error message'}")
                lines.extend(["", "---", ""])
        else:
            lines.extend(["## Subtask Status", ""])
            for entry in self.entries:
                line = f"- Subtask {entry.index}: {entry.status_label}"
                if not entry.succeeded and entry.error:
                    line += f" ({entry.error})"
                lines.append(line)
        return "\n".join(lines).rstrip() + "\n"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "main_task": self.main_task,
            "mode": self.mode,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "not_started": self.not_started,
            "background": self.background,
            "summary": self.summary.to_dict(),
            "results": [entry.to_dict() for entry in self.entries],
        }
        if self.status is not None:
            payload["status"] = {"running": self.status.running, "pending": self.status.pending}
        return payload
