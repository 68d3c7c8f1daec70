"""Strands tool adapters for the sub-agent tools.

These wrap ``spawn_sub_agent`` and ``delegate_task`` as plain Strands tools so a
Strands ``Agent`` can delegate work. Strands runs synchronous tools off the
event loop, so each call drives its own loop. Approval for Strands agents is
handled by ``agent_orchestrator.hooks.ToolApprovalHook``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from strands import tool

from agent_orchestrator.cancellation import CancelToken
from agent_orchestrator.config import load_settings
from agent_orchestrator.delegation import TaskDelegator, make_executor_factory
from agent_orchestrator.tools.delegate import DelegateTaskTool
from agent_orchestrator.tools.sub_agent import SpawnSubAgentTool

if TYPE_CHECKING:
    from agent_orchestrator.tools.base import Tool

logger = logging.getLogger(__name__)


def _run_tool(target: Tool, args: dict[str, Any]) -> str:
    async def _invoke() -> str:
        result = await target.execute(args, CancelToken())
        if result.error:
            logger.info("%s finished with error: %s", target.name, result.error)
        return result.llm_content

    return asyncio.run(_invoke())


def _drop_unset(args: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in args.items() if value is not None}


@tool
def spawn_sub_agent(
    task: str,
    context: str | None = None,
    timeout: float | None = None,
    priority: str | None = None,
    working_directory: str | None = None,
) -> str:
    """Run one well-defined task in an isolated sub-agent process and return its report.

    Args:
        task: Clear, specific task description (at least 10 characters).
        context: Optional background such as file paths or constraints.
        timeout: Maximum execution time in seconds (5-300).
        priority: One of low, medium, high.
        working_directory: Directory relative to the project root.
    """
    settings = load_settings()
    target = SpawnSubAgentTool(make_executor_factory(settings), settings.project_root)
    args = _drop_unset(
        {
            "task": task,
            "context": context,
            "timeout": timeout,
            "priority": priority,
            "working_directory": working_directory,
        }
    )
    return _run_tool(target, args)


@tool
def delegate_task(
    main_task: str,
    subtasks: list[dict[str, Any]],
    execution_mode: str = "parallel",
    max_concurrent_agents: int = 3,
    aggregate_results: bool = True,
) -> str:
    """Split a task into 1-10 subtasks run by sub-agents and return the aggregated report.

    Args:
        main_task: Overall description of the delegated task.
        subtasks: Subtasks, each with "task" and optional "context", "priority",
            "timeout", and "workingDirectory".
        execution_mode: "parallel" or "sequential".
        max_concurrent_agents: Parallel mode concurrency limit (1-5).
        aggregate_results: Include every subtask's output in the report.
    """
    settings = load_settings()
    delegator = TaskDelegator(make_executor_factory(settings))
    target = DelegateTaskTool(delegator, settings.project_root)
    args = {
        "mainTask": main_task,
        "subtasks": subtasks,
        "executionMode": execution_mode,
        "maxConcurrentAgents": max_concurrent_agents,
        "aggregateResults": aggregate_results,
    }
    return _run_tool(target, args)
