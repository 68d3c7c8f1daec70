"""Orchestrator runtime wiring.

OrchestratorRuntime is the entry point a host application uses: it loads
settings, builds the tool registry and the shared approval session, and hands
out one StreamCoordinator per conversation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agent_orchestrator.config import load_settings
from agent_orchestrator.delegation import TaskDelegator, make_executor_factory
from agent_orchestrator.scheduler import ApprovalSession, ToolCallScheduler
from agent_orchestrator.streaming import ConversationState, StreamCoordinator
from agent_orchestrator.telemetry import configure_logging
from agent_orchestrator.tools import build_default_registry

if TYPE_CHECKING:
    from agent_orchestrator.config import Settings
    from agent_orchestrator.scheduler import ApprovalHandler
    from agent_orchestrator.streaming import ModelBackend, TurnObserver
    from agent_orchestrator.subagents import ProcessSpawner
    from agent_orchestrator.tools import ToolRegistry

logger = logging.getLogger(__name__)


class OrchestratorRuntime:
    """Build coordinators that share one registry, delegator, and approval session."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        spawner: ProcessSpawner | None = None,
        setup_logging: bool = True,
    ) -> None:
        self._settings = settings or load_settings()
        if setup_logging:
            configure_logging(self._settings)
        self._delegator = TaskDelegator(make_executor_factory(self._settings, spawner))
        self._registry = build_default_registry(
            self._settings, spawner=spawner, delegator=self._delegator
        )
        self._session = ApprovalSession(self._settings.auto_approved_tools)
        logger.debug(
            "Orchestrator runtime ready: tools=%s auto_approved=%s",
            self._registry.names(),
            sorted(self._session.approved),
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def approval_session(self) -> ApprovalSession:
        return self._session

    def create_coordinator(
        self,
        backend: ModelBackend,
        observer: TurnObserver | None = None,
        approval_handler: ApprovalHandler | None = None,
    ) -> StreamCoordinator:
        """Return a coordinator for a new conversation against ``backend``."""
        scheduler = ToolCallScheduler(
            self._registry,
            approval_session=self._session,
            approval_handler=approval_handler,
            observer=observer.on_tool_calls_updated if observer else None,
        )
        return StreamCoordinator(
            backend,
            scheduler,
            observer,
            state=ConversationState(tools=self._registry.declarations()),
            split_threshold=self._settings.content_split_threshold,
            max_turns=self._settings.max_turns,
        )

    async def aclose(self) -> None:
        """Cancel background delegations still running."""
        await self._delegator.aclose()
