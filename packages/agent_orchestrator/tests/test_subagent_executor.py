from __future__ import annotations

import asyncio
import random
import sys

import pytest

from agent_orchestrator.subagents import (
    RetryPolicy,
    SubAgentExecutor,
    SubAgentParams,
    SubprocessSpawner,
    TaskPriority,
    TaskStatus,
    build_prompt,
)


def _params(task: str, **kwargs) -> SubAgentParams:
    return SubAgentParams(task=task, **kwargs)


def _quick(task: str, timeout: float) -> SubAgentParams:
    # Bypass the 5 second minimum so timeouts can be exercised quickly.
    return SubAgentParams.model_construct(task=task, timeout=timeout)


def test_executor_rejects_out_of_range_concurrency(fake_spawner, tmp_path) -> None:
    with pytest.raises(ValueError, match="between 1 and 5"):
        SubAgentExecutor(fake_spawner, tmp_path, max_concurrent_agents=6)
    with pytest.raises(ValueError):
        SubAgentExecutor(fake_spawner, tmp_path, max_concurrent_agents=0)


def test_build_prompt_includes_context_and_directory() -> None:
    params = _params("Summarize the changelog", context="Release 2.1", working_directory="docs")

    prompt = build_prompt(params)

    assert prompt.startswith("Context: Release 2.1\n\nTask: Summarize the changelog")
    assert prompt.endswith("Note: Execute this task in the directory: docs")


@pytest.mark.asyncio
async def test_executor_never_exceeds_concurrency_limit(make_spawner, tmp_path) -> None:
    rng = random.Random(7)
    tasks = [f"analyze module number {index}" for index in range(8)]
    spawner = make_spawner({task: {"delay": rng.uniform(0.005, 0.04)} for task in tasks})
    executor = SubAgentExecutor(spawner, tmp_path, max_concurrent_agents=2)
    observed: list[int] = []
    executor.subscribe(lambda event: observed.append(executor.active_count))

    executor.add_tasks(_params(task) for task in tasks)
    summary = await executor.wait_for_completion()

    assert spawner.max_active == 2
    assert max(observed) <= 2
    assert summary.total_tasks == 8
    assert summary.completed_tasks == 8
    assert executor.active_count == 0


@pytest.mark.asyncio
async def test_executor_starts_higher_priority_first(fake_spawner, tmp_path) -> None:
    executor = SubAgentExecutor(fake_spawner, tmp_path, max_concurrent_agents=1)

    executor.add_task(_params("occupy the only slot"))
    executor.add_task(_params("low priority work", priority=TaskPriority.LOW))
    executor.add_task(_params("medium priority work"))
    executor.add_task(_params("high priority work", priority=TaskPriority.HIGH))
    executor.add_task(_params("second high priority", priority="high"))
    await executor.wait_for_completion()

    assert fake_spawner.prompts == [
        "occupy the only slot",
        "high priority work",
        "second high priority",
        "medium priority work",
        "low priority work",
    ]


@pytest.mark.asyncio
async def test_executor_reports_success_output(make_spawner, tmp_path) -> None:
    spawner = make_spawner(stdout="  report text\n")
    executor = SubAgentExecutor(spawner, tmp_path)

    task_id = executor.add_task(_params("write the report"))
    result = await executor.wait_for_task(task_id)

    assert result.status is TaskStatus.COMPLETED
    assert result.output == "report text"
    assert result.error is None
    task = executor.get_task(task_id)
    assert task is not None
    assert task.started_at is not None
    assert task.completed_at is not None


@pytest.mark.asyncio
async def test_executor_reports_exit_code_and_stderr(make_spawner, tmp_path) -> None:
    spawner = make_spawner(returncode=2, stdout="", stderr="boom\n")
    executor = SubAgentExecutor(spawner, tmp_path)

    result = await executor.wait_for_task(executor.add_task(_params("this will fail")))

    assert result.status is TaskStatus.FAILED
    assert result.error == "Sub-agent exited with code 2: boom"


@pytest.mark.asyncio
async def test_executor_reports_terminating_signal(make_spawner, tmp_path) -> None:
    spawner = make_spawner(returncode=-9, stdout="", stderr="")
    executor = SubAgentExecutor(spawner, tmp_path)

    result = await executor.wait_for_task(executor.add_task(_params("this gets killed")))

    assert result.status is TaskStatus.FAILED
    assert result.error == "Sub-agent terminated by SIGKILL"


@pytest.mark.asyncio
async def test_executor_reports_spawn_failure(make_spawner, tmp_path) -> None:
    spawner = make_spawner(error=FileNotFoundError("qwen not found"))
    executor = SubAgentExecutor(spawner, tmp_path)

    result = await executor.wait_for_task(executor.add_task(_params("cannot even start")))

    assert result.status is TaskStatus.FAILED
    assert result.error == "Failed to start sub-agent: qwen not found"
    assert executor.active_count == 0


@pytest.mark.asyncio
async def test_executor_times_out_and_kills_stubborn_process(make_spawner, tmp_path) -> None:
    spawner = make_spawner(delay=10, ignore_terminate=True)
    executor = SubAgentExecutor(spawner, tmp_path, grace_period=0.05)

    result = await executor.wait_for_task(executor.add_task(_quick("never finishes", 0.05)))

    assert result.status is TaskStatus.FAILED
    assert result.timed_out
    assert result.error == "Sub-agent timed out after 0.05 seconds and was terminated."
    handle = spawner.handles[0]
    assert handle.terminated
    assert handle.killed
    await executor.wait_for_completion()
    assert executor.active_count == 0


@pytest.mark.asyncio
async def test_executor_timeout_terminates_without_kill(make_spawner, tmp_path) -> None:
    spawner = make_spawner(delay=10)
    executor = SubAgentExecutor(spawner, tmp_path, grace_period=1.0)

    result = await executor.wait_for_task(executor.add_task(_quick("slow but polite", 0.05)))

    assert result.timed_out
    assert spawner.handles[0].terminated
    assert not spawner.handles[0].killed


@pytest.mark.asyncio
async def test_executor_cancels_pending_and_running_tasks(make_spawner, tmp_path) -> None:
    spawner = make_spawner(delay=10)
    executor = SubAgentExecutor(spawner, tmp_path, max_concurrent_agents=1)
    running_id = executor.add_task(_params("long running job"))
    pending_id = executor.add_task(_params("queued behind it"))

    assert executor.cancel_task(pending_id)
    pending = await executor.wait_for_task(pending_id)
    assert pending.status is TaskStatus.CANCELLED
    assert pending.error == "Task cancelled"
    assert spawner.prompts == ["long running job"]

    assert executor.cancel_task(running_id)
    summary = await executor.wait_for_completion()

    assert spawner.handles[0].terminated
    assert summary.cancelled_tasks == 2
    assert not executor.cancel_task(running_id)
    assert not executor.cancel_task("task_unknown")


@pytest.mark.asyncio
async def test_executor_retries_failed_tasks_up_to_limit(make_spawner, tmp_path) -> None:
    spawner = make_spawner(returncode=1, stdout="", stderr="flaky")
    executor = SubAgentExecutor(
        spawner, tmp_path, retry_policy=RetryPolicy(enabled=True, max_retries=2)
    )
    events: list[str] = []
    executor.subscribe(lambda event: events.append(event.type))

    result = await executor.wait_for_task(executor.add_task(_params("flaky integration")))
    await executor.wait_for_completion()

    assert result.status is TaskStatus.FAILED
    assert result.attempt == 3
    assert len(executor.get_all_tasks()) == 3
    assert events.count("task_retried") == 2
    assert [item.attempt for item in executor.get_aggregated_results()] == [3]


@pytest.mark.asyncio
async def test_executor_does_not_retry_by_default(make_spawner, tmp_path) -> None:
    spawner = make_spawner(returncode=1, stdout="", stderr="nope")
    executor = SubAgentExecutor(spawner, tmp_path)

    await executor.wait_for_task(executor.add_task(_params("fails exactly once")))

    assert len(spawner.prompts) == 1


@pytest.mark.asyncio
async def test_executor_forwards_progress_and_working_directory(make_spawner, tmp_path) -> None:
    (tmp_path / "pkg").mkdir()
    spawner = make_spawner(chunks=("step 1", "step 2"))
    executor = SubAgentExecutor(spawner, tmp_path)
    progress: list[str] = []
    unsubscribe = executor.subscribe(
        lambda event: progress.append(event.text) if event.type == "task_progress" else None
    )

    await executor.wait_for_task(
        executor.add_task(_params("inspect the package", working_directory="pkg"))
    )
    unsubscribe()

    assert progress == ["step 1", "step 2"]
    assert spawner.working_dirs == [str(tmp_path / "pkg")]


@pytest.mark.asyncio
async def test_executor_listener_errors_do_not_break_execution(fake_spawner, tmp_path) -> None:
    executor = SubAgentExecutor(fake_spawner, tmp_path)

    def _broken(_event) -> None:
        raise RuntimeError("listener bug")

    executor.subscribe(_broken)
    result = await executor.wait_for_task(executor.add_task(_params("survive the listener")))

    assert result.status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_executor_status_summary_and_clearing(make_spawner, tmp_path) -> None:
    spawner = make_spawner(scripts={"broken": {"returncode": 1, "stderr": "bad"}})
    executor = SubAgentExecutor(spawner, tmp_path, max_concurrent_agents=2)
    executor.add_task(_params("working task one"))
    executor.add_task(_params("broken task two"))

    status = executor.get_status()
    assert status.running == 2
    assert status.max_concurrent == 2

    summary = await executor.wait_for_completion()
    assert summary.completed_tasks == 1
    assert summary.failed_tasks == 1
    assert summary.average_task_time >= 0
    assert [task.status for task in executor.get_tasks_by_status(TaskStatus.FAILED)] == [
        TaskStatus.FAILED
    ]

    assert executor.clear_completed_tasks() == 2
    assert executor.get_all_tasks() == []


@pytest.mark.asyncio
async def test_wait_for_unknown_task_raises(fake_spawner, tmp_path) -> None:
    executor = SubAgentExecutor(fake_spawner, tmp_path)

    with pytest.raises(KeyError):
        await executor.wait_for_task("task_missing")


@pytest.mark.asyncio
async def test_subprocess_spawner_runs_real_process(tmp_path) -> None:
    script = "import sys; print('echo: ' + sys.argv[-1])"
    spawner = SubprocessSpawner([sys.executable, "-c", script], prompt_flag="")
    executor = SubAgentExecutor(spawner, tmp_path)

    result = await executor.wait_for_task(executor.add_task(_params("hello from the test")))

    assert result.status is TaskStatus.COMPLETED
    assert result.output == "echo: hello from the test"


@pytest.mark.asyncio
async def test_subprocess_spawner_reports_stderr(tmp_path) -> None:
    script = "import sys; sys.stderr.write('bad input'); sys.exit(3)"
    spawner = SubprocessSpawner([sys.executable, "-c", script], prompt_flag="")
    executor = SubAgentExecutor(spawner, tmp_path)

    result = await executor.wait_for_task(executor.add_task(_params("exit with an error")))

    assert result.status is TaskStatus.FAILED
    assert result.error == "Sub-agent exited with code 3: bad input"


@pytest.mark.asyncio
async def test_subprocess_spawner_terminates_on_timeout(tmp_path) -> None:
    script = "import time; time.sleep(30)"
    spawner = SubprocessSpawner([sys.executable, "-c", script], prompt_flag="")
    executor = SubAgentExecutor(spawner, tmp_path, grace_period=2.0)

    result = await asyncio.wait_for(
        executor.wait_for_task(executor.add_task(_quick("sleep far too long", 0.3))), 10
    )

    assert result.timed_out
    assert result.status is TaskStatus.FAILED


def test_subprocess_spawner_builds_arguments() -> None:
    spawner = SubprocessSpawner(["qwen", "--yolo"], prompt_flag="-p")

    assert spawner.build_args("do it") == ["qwen", "--yolo", "-p", "do it"]
    with pytest.raises(ValueError):
        SubprocessSpawner([])


@pytest.mark.asyncio
async def test_subprocess_timeout_stops_children_holding_output(tmp_path) -> None:
    script = (
        "import subprocess, sys, time; "
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)']); "
        "print('started', flush=True); time.sleep(30)"
    )
    spawner = SubprocessSpawner([sys.executable, "-c", script], prompt_flag="")
    executor = SubAgentExecutor(spawner, tmp_path, grace_period=0.2)
    loop = asyncio.get_running_loop()
    started = loop.time()

    result = await asyncio.wait_for(
        executor.wait_for_task(executor.add_task(_quick("leave a child behind", 0.5))), 10
    )

    assert loop.time() - started < 5
    assert result.timed_out
    assert result.status is TaskStatus.FAILED
    assert result.error.startswith("Sub-agent timed out after 0.5 seconds")
    assert executor.get_status().running == 0
