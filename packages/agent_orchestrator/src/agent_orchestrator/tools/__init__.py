"""Tools package for the orchestration core.

This package provides:
- Tool: capability set (validate, requires_confirmation, execute) every tool implements
- ToolRegistry: maps tool names to implementations for the scheduler
- spawn_sub_agent, delegate_task, aggregate_results: the sub-agent tools
- strands_tools: the same sub-agent tools wrapped for Strands agents
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_orchestrator.delegation import TaskDelegator, make_executor_factory
from agent_orchestrator.tools.aggregate import AGGREGATE_RESULTS, AggregateResultsTool
from agent_orchestrator.tools.base import ConfirmationDetails, ProgressCallback, Tool, ToolResult
from agent_orchestrator.tools.delegate import DELEGATE_TASK, DelegateTaskTool
from agent_orchestrator.tools.registry import ToolDefinition, ToolDetailLevel, ToolRegistry
from agent_orchestrator.tools.sub_agent import (
    SPAWN_SUB_AGENT,
    SpawnSubAgentTool,
    check_working_directory,
)

if TYPE_CHECKING:
    from agent_orchestrator.config import Settings
    from agent_orchestrator.subagents import ProcessSpawner


def build_default_registry(
    settings: Settings,
    *,
    spawner: ProcessSpawner | None = None,
    delegator: TaskDelegator | None = None,
) -> ToolRegistry:
    """Registry with spawn_sub_agent, delegate_task, and aggregate_results."""
    executor_factory = make_executor_factory(settings, spawner)
    return ToolRegistry(
        [
            SpawnSubAgentTool(executor_factory, settings.project_root),
            DelegateTaskTool(delegator or TaskDelegator(executor_factory), settings.project_root),
            AggregateResultsTool(),
        ]
    )


__all__ = [
    "AGGREGATE_RESULTS",
    "DELEGATE_TASK",
    "SPAWN_SUB_AGENT",
    "AggregateResultsTool",
    "ConfirmationDetails",
    "DelegateTaskTool",
    "ProgressCallback",
    "SpawnSubAgentTool",
    "Tool",
    "ToolDefinition",
    "ToolDetailLevel",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
    "check_working_directory",
]
