"""Bounded-concurrency executor for isolated sub-agent processes."""

from __future__ import annotations

import asyncio
import itertools
import logging
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from agent_orchestrator.errors import ExecutionError, SubAgentTimeoutError
from agent_orchestrator.subagents.models import (
    ExecutionSummary,
    ExecutorEvent,
    ExecutorEventType,
    ExecutorStatus,
    RetryPolicy,
    SubAgentResult,
    SubAgentTask,
    TaskStatus,
    build_prompt,
)
from agent_orchestrator.utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from agent_orchestrator.subagents.models import SubAgentParams
    from agent_orchestrator.subagents.process import ProcessHandle, ProcessOutcome, ProcessSpawner

logger = logging.getLogger(__name__)

MIN_CONCURRENT_AGENTS = 1
MAX_CONCURRENT_AGENTS = 5
CANCELLED_MESSAGE = "Task cancelled"


class SubAgentExecutor:
    """Run sub-agent tasks in isolated processes, at most ``max_concurrent_agents`` at once.

    All bookkeeping happens on the event loop that calls ``add_task``. A slot is
    held from the moment a task starts until its process has exited, so a
    cancelled or timed-out task keeps its slot through the termination grace
    period.
    """

    def __init__(
        self,
        spawner: ProcessSpawner,
        project_root: str | Path,
        *,
        max_concurrent_agents: int = 3,
        default_timeout: float = 60.0,
        grace_period: float = 0.2,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if not MIN_CONCURRENT_AGENTS <= max_concurrent_agents <= MAX_CONCURRENT_AGENTS:
            msg = (
                f"max_concurrent_agents must be between {MIN_CONCURRENT_AGENTS} "
                f"and {MAX_CONCURRENT_AGENTS}"
            )
            raise ValueError(msg)
        self._spawner = spawner
        self._project_root = Path(project_root)
        self._max_concurrent = max_concurrent_agents
        self._default_timeout = default_timeout
        self._grace_period = grace_period
        self._retry_policy = retry_policy or RetryPolicy()
        self._sequence = itertools.count()
        self._tasks: dict[str, SubAgentTask] = {}
        self._pending: list[str] = []
        self._running: dict[str, asyncio.Task[None]] = {}
        self._stop_events: dict[str, asyncio.Event] = {}
        self._done_events: dict[str, asyncio.Event] = {}
        self._retries: dict[str, str] = {}
        self._listeners: list[Callable[[ExecutorEvent], None]] = []
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def max_concurrent_agents(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """Number of occupied slots, including tasks still shutting down."""
        return len(self._running)

    def subscribe(self, listener: Callable[[ExecutorEvent], None]) -> Callable[[], None]:
        """Register an event listener and return a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def add_task(
        self,
        params: SubAgentParams,
        *,
        attempt: int = 1,
        retry_of: str | None = None,
    ) -> str:
        """Queue a task and return its id without waiting for it to start.

        Must be called from a running event loop.
        """
        task = SubAgentTask(
            id=f"task_{uuid4().hex[:12]}",
            params=params,
            timeout=params.timeout or self._default_timeout,
            sequence=next(self._sequence),
            created_at=utc_now(),
            attempt=attempt,
            retry_of=retry_of,
        )
        self._tasks[task.id] = task
        self._done_events[task.id] = asyncio.Event()
        self._pending.append(task.id)
        self._idle.clear()
        logger.debug("Queued sub-agent task %s (priority=%s)", task.id, task.priority.value)
        self._emit("task_added", task)
        self._process_queue()
        return task.id

    def add_tasks(self, params_list: Iterable[SubAgentParams]) -> list[str]:
        return [self.add_task(params) for params in params_list]

    def cancel_task(self, task_id: str) -> bool:
        """Cancel a pending or running task. Returns False when it already finished."""
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            return False
        if task.status is TaskStatus.PENDING:
            self._pending.remove(task_id)
            self._finish(task, TaskStatus.CANCELLED, error=CANCELLED_MESSAGE)
            self._check_idle()
            return True
        stop = self._stop_events.get(task_id)
        if stop is not None:
            stop.set()
        self._finish(task, TaskStatus.CANCELLED, error=CANCELLED_MESSAGE)
        return True

    def cancel_all(self) -> int:
        """Cancel every pending and running task."""
        ids = [*self._pending, *self._running]
        return sum(1 for task_id in ids if self.cancel_task(task_id))

    def get_task(self, task_id: str) -> SubAgentTask | None:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[SubAgentTask]:
        return sorted(self._tasks.values(), key=lambda task: task.sequence)

    def get_tasks_by_status(self, status: TaskStatus) -> list[SubAgentTask]:
        return [task for task in self.get_all_tasks() if task.status is status]

    async def wait_for_task(self, task_id: str) -> SubAgentResult:
        """Wait until a task is terminal, following it through any retries."""
        current = task_id
        while True:
            done = self._done_events.get(current)
            if done is None:
                msg = f"Unknown sub-agent task: {current}"
                raise KeyError(msg)
            await done.wait()
            retry_id = self._retries.get(current)
            if retry_id is None:
                return self._tasks[current].to_result()
            current = retry_id

    async def wait_for_completion(self) -> ExecutionSummary:
        """Block until no task is pending or running."""
        while self._pending or self._running:
            self._idle.clear()
            self._check_idle()
            await self._idle.wait()
        return self.get_execution_summary()

    def get_execution_summary(self) -> ExecutionSummary:
        tasks = list(self._tasks.values())
        finished = [task for task in tasks if task.status.is_terminal and task.started_at]
        total_time = sum(task.duration for task in finished)
        return ExecutionSummary(
            total_tasks=len(tasks),
            completed_tasks=sum(1 for task in tasks if task.status is TaskStatus.COMPLETED),
            failed_tasks=sum(1 for task in tasks if task.status is TaskStatus.FAILED),
            cancelled_tasks=sum(1 for task in tasks if task.status is TaskStatus.CANCELLED),
            total_execution_time=total_time,
            average_task_time=total_time / len(finished) if finished else 0.0,
        )

    def get_aggregated_results(self) -> list[SubAgentResult]:
        """Terminal results in creation order, leaving out attempts that were retried."""
        return [
            task.to_result()
            for task in self.get_all_tasks()
            if task.status.is_terminal and task.id not in self._retries
        ]

    def get_status(self) -> ExecutorStatus:
        counts = {status: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status] += 1
        return ExecutorStatus(
            running=counts[TaskStatus.RUNNING],
            pending=counts[TaskStatus.PENDING],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            cancelled=counts[TaskStatus.CANCELLED],
            max_concurrent=self._max_concurrent,
        )

    def clear_completed_tasks(self) -> int:
        """Forget terminal tasks whose processes have exited."""
        cleared = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status.is_terminal and task_id not in self._running
        ]
        for task_id in cleared:
            del self._tasks[task_id]
            self._done_events.pop(task_id, None)
            self._retries.pop(task_id, None)
        self._emit("tasks_cleared", count=len(cleared))
        return len(cleared)

    async def aclose(self) -> None:
        """Cancel everything and wait for the processes to exit."""
        self.cancel_all()
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)

    def _process_queue(self) -> None:
        while self._pending and len(self._running) < self._max_concurrent:
            next_id = min(
                self._pending,
                key=lambda task_id: (
                    -self._tasks[task_id].priority.rank,
                    self._tasks[task_id].sequence,
                ),
            )
            self._pending.remove(next_id)
            self._start(self._tasks[next_id])

    def _start(self, task: SubAgentTask) -> None:
        task.status = TaskStatus.RUNNING
        task.started_at = utc_now()
        self._stop_events[task.id] = asyncio.Event()
        self._running[task.id] = asyncio.get_running_loop().create_task(self._run(task))
        logger.info("Started sub-agent task %s (attempt %d)", task.id, task.attempt)
        self._emit("task_started", task)

    async def _run(self, task: SubAgentTask) -> None:
        try:
            await self._execute(task)
        except Exception as exc:
            logger.exception("Sub-agent task %s crashed", task.id)
            self._finish(task, TaskStatus.FAILED, error=str(exc) or type(exc).__name__)
        finally:
            self._running.pop(task.id, None)
            self._stop_events.pop(task.id, None)
            self._process_queue()
            self._check_idle()

    async def _execute(self, task: SubAgentTask) -> None:
        stop = self._stop_events[task.id]
        working_dir = self._project_root
        if task.params.working_directory:
            working_dir = self._project_root / task.params.working_directory
        try:
            handle = await self._spawner.spawn(
                build_prompt(task.params),
                str(working_dir),
                on_output=lambda text: self._emit("task_progress", task, text=text),
            )
        except OSError as exc:
            logger.warning("Failed to start sub-agent task %s: %s", task.id, exc)
            self._finish(task, TaskStatus.FAILED, error=f"Failed to start sub-agent: {exc}")
            return

        exited = asyncio.ensure_future(handle.wait())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait(
                {exited, stopped}, timeout=task.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopped.cancel()

        if exited.done():
            self._finish_from_outcome(task, exited.result())
            return

        await self._terminate(handle, exited)
        if stop.is_set():
            logger.info("Sub-agent task %s terminated after cancellation", task.id)
            return
        task.timed_out = True
        logger.warning("Sub-agent task %s timed out after %gs", task.id, task.timeout)
        self._finish(task, TaskStatus.FAILED, error=str(SubAgentTimeoutError(task.timeout)))

    async def _terminate(
        self, handle: ProcessHandle, exited: asyncio.Future[ProcessOutcome]
    ) -> None:
        handle.terminate()
        try:
            await asyncio.wait_for(asyncio.shield(exited), self._grace_period)
        except TimeoutError:
            logger.debug("Sub-agent ignored terminate, killing")
            handle.kill()
            await exited

    def _finish_from_outcome(self, task: SubAgentTask, outcome: ProcessOutcome) -> None:
        if outcome.succeeded:
            self._finish(task, TaskStatus.COMPLETED, output=outcome.stdout.strip())
            return
        if outcome.signal_name:
            reason = f"Sub-agent terminated by {outcome.signal_name}"
        else:
            reason = f"Sub-agent exited with code {outcome.returncode}"
        diagnostic = (outcome.stderr or outcome.stdout).strip()
        failure = ExecutionError(f"{reason}: {diagnostic}" if diagnostic else reason)
        self._finish(task, TaskStatus.FAILED, output=outcome.stdout.strip(), error=str(failure))

    def _finish(
        self,
        task: SubAgentTask,
        status: TaskStatus,
        *,
        output: str | None = None,
        error: str | None = None,
    ) -> bool:
        if task.status.is_terminal:
            return False
        task.status = status
        task.completed_at = utc_now()
        task.output = output
        task.error = error
        logger.info("Sub-agent task %s %s", task.id, status.value)
        if status is TaskStatus.FAILED and self._should_retry(task):
            retry_id = self.add_task(task.params, attempt=task.attempt + 1, retry_of=task.id)
            self._retries[task.id] = retry_id
            self._emit("task_failed", task)
            self._emit("task_retried", task, retry_task_id=retry_id)
        else:
            self._emit(_TERMINAL_EVENTS[status], task)
        self._done_events[task.id].set()
        return True

    def _should_retry(self, task: SubAgentTask) -> bool:
        policy = self._retry_policy
        return policy.enabled and task.attempt <= policy.max_retries

    def _check_idle(self) -> None:
        if not self._pending and not self._running:
            self._idle.set()

    def _emit(
        self,
        event_type: ExecutorEventType,
        task: SubAgentTask | None = None,
        *,
        text: str | None = None,
        retry_task_id: str | None = None,
        count: int = 0,
    ) -> None:
        event = ExecutorEvent(
            type=event_type, task=task, text=text, retry_task_id=retry_task_id, count=count
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Executor listener failed for %s", event_type)


_TERMINAL_EVENTS: dict[TaskStatus, ExecutorEventType] = {
    TaskStatus.COMPLETED: "task_completed",
    TaskStatus.FAILED: "task_failed",
    TaskStatus.CANCELLED: "task_cancelled",
}
