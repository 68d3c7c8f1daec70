"""Tool that splits a task into subtasks run by sub-agents."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from agent_orchestrator.delegation import DelegationRequest
from agent_orchestrator.delegation.models import MAX_SUBTASKS
from agent_orchestrator.errors import CancellationError, ValidationError
from agent_orchestrator.tools.base import ConfirmationDetails, Tool, ToolResult
from agent_orchestrator.tools.registry import ToolDefinition
from agent_orchestrator.tools.sub_agent import (
    PRIORITY_SCHEMA,
    TIMEOUT_SCHEMA,
    WORKING_DIRECTORY_SCHEMA,
    check_working_directory,
)
from agent_orchestrator.utils import describe_validation_error

if TYPE_CHECKING:
    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.delegation import TaskDelegator
    from agent_orchestrator.tools.base import ProgressCallback

DELEGATE_TASK = "delegate_task"


class DelegateTaskTool(Tool):
    """Run 1-10 subtasks through sub-agents and report per-subtask outcomes."""

    definition = ToolDefinition(
        name=DELEGATE_TASK,
        description=(
            "Delegate a complex task by splitting it into subtasks executed by independent "
            "sub-agents, either in parallel (faster, for independent work) or sequentially "
            "(safer, for dependent steps). Results are reported in subtask order."
        ),
        category="agents",
        tags=("subagent", "orchestration", "delegation"),
        input_schema={
            "type": "object",
            "properties": {
                "mainTask": {
                    "type": "string",
                    "description": "Overall description of the task being delegated.",
                },
                "subtasks": {
                    "type": "array",
                    "minItems": 1,
                    "maxItems": MAX_SUBTASKS,
                    "items": {
                        "type": "object",
                        "properties": {
                            "task": {"type": "string", "description": "Subtask description."},
                            "context": {"type": "string", "description": "Optional context."},
                            "priority": PRIORITY_SCHEMA,
                            "timeout": TIMEOUT_SCHEMA,
                            "workingDirectory": WORKING_DIRECTORY_SCHEMA,
                        },
                        "required": ["task"],
                    },
                },
                "executionMode": {
                    "type": "string",
                    "enum": ["parallel", "sequential"],
                    "default": "parallel",
                },
                "maxConcurrentAgents": {
                    "type": "number",
                    "minimum": 1,
                    "maximum": 5,
                    "default": 3,
                    "description": "Parallel mode only.",
                },
                "waitForCompletion": {"type": "boolean", "default": True},
                "aggregateResults": {"type": "boolean", "default": True},
            },
            "required": ["mainTask", "subtasks"],
        },
        capabilities=("delegate",),
        requires_approval=True,
    )

    def __init__(self, delegator: TaskDelegator, project_root: str | Path) -> None:
        self._delegator = delegator
        self._project_root = Path(project_root)

    def parse(self, args: dict[str, Any]) -> DelegationRequest:
        try:
            return DelegationRequest.model_validate(args)
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc

    def validate(self, args: dict[str, Any]) -> str | None:
        try:
            request = self.parse(args)
        except ValidationError as exc:
            return str(exc)
        for index, spec in enumerate(request.subtasks, start=1):
            problem = check_working_directory(self._project_root, spec.working_directory)
            if problem:
                return f"Subtask {index}: {problem}"
        return None

    def requires_confirmation(self, args: dict[str, Any]) -> ConfirmationDetails | None:
        try:
            prompt = self.parse(args).describe()
        except ValidationError:
            prompt = f"Delegate \"{args.get('mainTask', '')}\""
        return ConfirmationDetails(
            title="Confirm Task Delegation", prompt=prompt, root_command=DELEGATE_TASK
        )

    def describe(self, args: dict[str, Any]) -> str:
        try:
            return self.parse(args).describe()
        except ValidationError:
            return self.name

    async def execute(
        self,
        args: dict[str, Any],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        problem = self.validate(args)
        if problem:
            return ToolResult(
                llm_content=(
                    f"Task delegation rejected: {args.get('mainTask', '')}\nReason: {problem}"
                ),
                return_display=f"Error: {problem}",
                error=problem,
            )
        try:
            report = await self._delegator.delegate(self.parse(args), cancel_token, on_progress)
        except CancellationError:
            return ToolResult(
                llm_content="Task delegation was cancelled by user before it could start.",
                return_display="Task delegation cancelled by user.",
                error=cancel_token.reason,
            )
        return ToolResult(
            llm_content=report.to_markdown(),
            return_display=report.headline(),
            data=report.to_dict(),
        )
