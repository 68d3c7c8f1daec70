"""Tool that runs one task in an isolated sub-agent process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from agent_orchestrator.errors import CancellationError, ValidationError
from agent_orchestrator.subagents.models import MAX_TIMEOUT, MIN_TIMEOUT, SubAgentParams
from agent_orchestrator.tools.base import ConfirmationDetails, Tool, ToolResult
from agent_orchestrator.tools.registry import ToolDefinition
from agent_orchestrator.utils import describe_validation_error, preview

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.subagents import ExecutorEvent, SubAgentExecutor
    from agent_orchestrator.tools.base import ProgressCallback

logger = logging.getLogger(__name__)

SPAWN_SUB_AGENT = "spawn_sub_agent"

PRIORITY_SCHEMA = {
    "type": "string",
    "enum": ["low", "medium", "high"],
    "description": "Task priority for scheduling when several sub-agents are queued.",
}
TIMEOUT_SCHEMA = {
    "type": "number",
    "minimum": MIN_TIMEOUT,
    "maximum": MAX_TIMEOUT,
    "description": "Maximum execution time in seconds.",
}
WORKING_DIRECTORY_SCHEMA = {
    "type": "string",
    "description": "Working directory relative to the project root.",
}


def check_working_directory(project_root: str | Path, relative: str | None) -> str | None:
    """Return an error message unless ``relative`` names a directory inside the project."""
    if not relative:
        return None
    root = Path(project_root).resolve()
    if Path(relative).is_absolute():
        return (
            "Working directory cannot be absolute. "
            "Must be relative to the project root directory."
        )
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        return "Working directory must be inside the project root directory."
    if not target.is_dir():
        return "Working directory must exist."
    return None


class SpawnSubAgentTool(Tool):
    """Delegate a single well-defined task to an independent sub-agent."""

    definition = ToolDefinition(
        name=SPAWN_SUB_AGENT,
        description=(
            "Spawn a sub-agent to handle a specific task in isolation. The sub-agent runs "
            "as a separate non-interactive CLI process with its own working directory and "
            "full tool access. For several tasks prefer delegate_task."
        ),
        category="agents",
        tags=("subagent", "orchestration"),
        input_schema={
            "type": "object",
            "properties": {
                "task": {
                    "type": "string",
                    "description": "Clear, specific task (at least 10 characters).",
                },
                "context": {
                    "type": "string",
                    "description": "Optional background such as file paths or constraints.",
                },
                "timeout": TIMEOUT_SCHEMA,
                "priority": PRIORITY_SCHEMA,
                "workingDirectory": WORKING_DIRECTORY_SCHEMA,
            },
            "required": ["task"],
        },
        capabilities=("delegate",),
        requires_approval=True,
    )

    def __init__(
        self,
        executor_factory: Callable[[int], SubAgentExecutor],
        project_root: str | Path,
    ) -> None:
        self._executor_factory = executor_factory
        self._project_root = Path(project_root)

    def parse(self, args: dict[str, Any]) -> SubAgentParams:
        try:
            return SubAgentParams.model_validate(args)
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc

    def validate(self, args: dict[str, Any]) -> str | None:
        try:
            params = self.parse(args)
        except ValidationError as exc:
            return str(exc)
        return check_working_directory(self._project_root, params.working_directory)

    def requires_confirmation(self, args: dict[str, Any]) -> ConfirmationDetails | None:
        task = str(args.get("task", ""))
        return ConfirmationDetails(
            title="Confirm Sub-Agent Spawn",
            prompt=f"Spawn sub-agent: {preview(task, 50)}",
            root_command=SPAWN_SUB_AGENT,
        )

    def describe(self, args: dict[str, Any]) -> str:
        try:
            params = self.parse(args)
        except ValidationError:
            return self.name
        text = f"Sub-agent task: {preview(params.task, 100)}"
        if params.working_directory:
            text += f" [in {params.working_directory}]"
        text += f" (priority: {params.priority.value})"
        if params.timeout:
            text += f" (timeout: {params.timeout:g}s)"
        return text

    async def execute(
        self,
        args: dict[str, Any],
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        problem = self.validate(args)
        if problem:
            task = str(args.get("task", ""))
            return ToolResult(
                llm_content=f"Sub-agent task rejected: {task}\nReason: {problem}",
                return_display=f"Error: {problem}",
                error=problem,
            )
        if cancel_token.cancelled:
            return ToolResult(
                llm_content="Sub-agent task was cancelled by user before it could start.",
                return_display="Sub-agent task cancelled by user.",
                error=cancel_token.reason,
            )

        params = self.parse(args)
        executor = self._executor_factory(1)
        if on_progress is not None:
            executor.subscribe(_progress_listener(on_progress))
        task_id = executor.add_task(params)
        logger.info("Spawned sub-agent task %s: %s", task_id, preview(params.task, 60))
        try:
            result = await cancel_token.race(executor.wait_for_task(task_id))
        except CancellationError:
            executor.cancel_all()
            return ToolResult(
                llm_content="Sub-agent task was cancelled by user.",
                return_display="Sub-agent task cancelled.",
                error=cancel_token.reason,
            )
        finally:
            await executor.aclose()

        data = {
            "task_id": result.task_id,
            "status": result.status.value,
            "completed": int(result.succeeded),
            "failed": int(not result.succeeded),
            "duration": round(result.duration, 3),
        }
        if result.succeeded:
            return ToolResult(
                llm_content=(
                    "Sub-agent completed successfully\n\n"
                    f"**Task:** {params.task}\n\n**Output:**\n{result.output}"
                ),
                return_display=result.output or "Sub-agent completed successfully (no output)",
                data=data,
            )
        sections = [f"Sub-agent failed: {result.error}", f"**Task:** {params.task}"]
        if result.output:
            sections.append(f"**Output:** {result.output}")
        return ToolResult(
            llm_content="\n\n".join(sections),
            return_display=f"Sub-agent failed: {result.error or 'Unknown error'}",
            error=result.error or "Sub-agent failed",
            data=data,
        )


def _progress_listener(on_progress: ProgressCallback) -> Callable[[ExecutorEvent], None]:
    def _listener(event: ExecutorEvent) -> None:
        if event.type == "task_progress" and event.text:
            on_progress(event.text)

    return _listener
