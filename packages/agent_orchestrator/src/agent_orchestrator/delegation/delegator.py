"""Run delegated subtasks through a sub-agent executor and aggregate the results."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from agent_orchestrator.delegation.models import AggregatedReport, ReportEntry
from agent_orchestrator.errors import CancellationError
from agent_orchestrator.subagents import (
    RetryPolicy,
    SubAgentExecutor,
    SubprocessSpawner,
)
from agent_orchestrator.telemetry import span
from agent_orchestrator.utils import preview

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_orchestrator.cancellation import CancelToken
    from agent_orchestrator.config import Settings
    from agent_orchestrator.delegation.models import DelegationRequest
    from agent_orchestrator.subagents import ExecutorEvent, ProcessSpawner
    from agent_orchestrator.tools.base import ProgressCallback

logger = logging.getLogger(__name__)


def make_executor_factory(
    settings: Settings, spawner: ProcessSpawner | None = None
) -> Callable[[int], SubAgentExecutor]:
    """Build executors configured from settings, one per delegation."""
    process_spawner = spawner or SubprocessSpawner(
        settings.subagent_command,
        settings.subagent_prompt_flag,
        drain_timeout=settings.termination_grace_period,
    )
    retry_policy = RetryPolicy(
        enabled=settings.retry_failed_tasks, max_retries=settings.max_task_retries
    )

    def _factory(max_concurrent_agents: int) -> SubAgentExecutor:
        return SubAgentExecutor(
            process_spawner,
            settings.project_root,
            max_concurrent_agents=max_concurrent_agents,
            default_timeout=settings.default_task_timeout,
            grace_period=settings.termination_grace_period,
            retry_policy=retry_policy,
        )

    return _factory


class TaskDelegator:
    """Execute a ``DelegationRequest`` sequentially or in parallel.

    Each delegation gets its own executor. Parallel delegations that do not
    wait for completion keep running in the background until they finish or
    ``aclose`` is called.
    """

    def __init__(self, executor_factory: Callable[[int], SubAgentExecutor]) -> None:
        self._executor_factory = executor_factory
        self._background: set[asyncio.Task[None]] = set()

    @property
    def background_count(self) -> int:
        return len(self._background)

    async def delegate(
        self,
        request: DelegationRequest,
        cancel_token: CancelToken,
        on_progress: ProgressCallback | None = None,
    ) -> AggregatedReport:
        cancel_token.raise_if_cancelled()
        progress = on_progress or _ignore
        with span(
            "orchestrator.delegation",
            mode=request.execution_mode,
            subtasks=len(request.subtasks),
        ) as current:
            progress(
                f"Starting task delegation: {request.main_task}\n"
                f"{len(request.subtasks)} subtasks, {request.execution_mode} execution\n"
            )
            if request.execution_mode == "sequential":
                report = await self._run_sequential(request, cancel_token, progress)
            else:
                report = await self._run_parallel(request, cancel_token, progress)
            current.set_attribute("delegation.succeeded", report.succeeded)
            logger.info("Delegation finished: %s", report.headline())
            return report

    async def aclose(self) -> None:
        """Cancel background delegations and wait for their processes to exit."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _run_sequential(
        self,
        request: DelegationRequest,
        cancel_token: CancelToken,
        progress: ProgressCallback,
    ) -> AggregatedReport:
        executor = self._executor_factory(1)
        unsubscribe = executor.subscribe(_forward_progress(progress))
        total = len(request.subtasks)
        entries: list[ReportEntry] = []
        try:
            for index, spec in enumerate(request.subtasks, start=1):
                if cancel_token.cancelled:
                    entries.append(ReportEntry.not_started(index, spec.task))
                    continue
                progress(f"Starting subtask {index}/{total}: {preview(spec.task, 60)}\n")
                task_id = executor.add_task(spec.to_params())
                try:
                    result = await cancel_token.race(executor.wait_for_task(task_id))
                except CancellationError:
                    executor.cancel_all()
                    result = await executor.wait_for_task(task_id)
                entries.append(ReportEntry.from_result(index, result))
                progress(f"Subtask {index}/{total} {result.status.value}\n")
        finally:
            unsubscribe()
            await executor.aclose()
        return AggregatedReport(
            main_task=request.main_task,
            mode="sequential",
            total=total,
            entries=tuple(entries),
            summary=executor.get_execution_summary(),
            aggregated=request.aggregate_results,
        )

    async def _run_parallel(
        self,
        request: DelegationRequest,
        cancel_token: CancelToken,
        progress: ProgressCallback,
    ) -> AggregatedReport:
        executor = self._executor_factory(request.max_concurrent_agents)
        unsubscribe = executor.subscribe(_forward_progress(progress))
        task_ids = executor.add_tasks(spec.to_params() for spec in request.subtasks)

        if not request.wait_for_completion:
            status = executor.get_status()
            self._run_in_background(executor, cancel_token, unsubscribe)
            return AggregatedReport(
                main_task=request.main_task,
                mode="parallel",
                total=len(task_ids),
                aggregated=request.aggregate_results,
                background=True,
                status=status,
            )

        try:
            try:
                await cancel_token.race(executor.wait_for_completion())
            except CancellationError:
                executor.cancel_all()
            results = [await executor.wait_for_task(task_id) for task_id in task_ids]
        finally:
            unsubscribe()
            await executor.aclose()
        progress("All subtasks finished\n")
        return AggregatedReport(
            main_task=request.main_task,
            mode="parallel",
            total=len(task_ids),
            entries=tuple(
                ReportEntry.from_result(index, result)
                for index, result in enumerate(results, start=1)
            ),
            summary=executor.get_execution_summary(),
            aggregated=request.aggregate_results,
        )

    def _run_in_background(
        self,
        executor: SubAgentExecutor,
        cancel_token: CancelToken,
        unsubscribe: Callable[[], None],
    ) -> None:
        async def _drain() -> None:
            try:
                summary = await cancel_token.race(executor.wait_for_completion())
                logger.info(
                    "Background delegation finished: %d completed, %d failed",
                    summary.completed_tasks,
                    summary.failed_tasks,
                )
            except CancellationError:
                logger.info("Background delegation cancelled")
            finally:
                unsubscribe()
                await executor.aclose()

        task = asyncio.get_running_loop().create_task(_drain())
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def _forward_progress(progress: ProgressCallback) -> Callable[[ExecutorEvent], None]:
    def _listener(event: ExecutorEvent) -> None:
        if event.type == "task_progress" and event.text:
            progress(event.text)
        elif event.type == "task_retried" and event.task is not None:
            progress(f"Retrying failed subtask (attempt {event.task.attempt + 1})\n")

    return _listener


def _ignore(_text: str) -> None:
    return None
