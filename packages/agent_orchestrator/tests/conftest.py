from __future__ import annotations

import asyncio
from typing import Any

import pytest

from agent_orchestrator.subagents import ProcessOutcome


@pytest.fixture(autouse=True)
def _set_required_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("ORCHESTRATOR_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("SUBAGENT_COMMAND", "qwen")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    for name in (
        "MAX_CONCURRENT_AGENTS",
        "DEFAULT_TASK_TIMEOUT",
        "RETRY_FAILED_TASKS",
        "AUTO_APPROVED_TOOLS",
        "MAX_TURNS",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeHandle:
    """Scripted sub-agent process."""

    def __init__(
        self,
        spawner: FakeSpawner,
        *,
        returncode: int = 0,
        stdout: str = "done",
        stderr: str = "",
        delay: float = 0.01,
        ignore_terminate: bool = False,
        chunks: tuple[str, ...] = (),
        on_output: Any = None,
    ) -> None:
        self._spawner = spawner
        self._outcome = ProcessOutcome(returncode=returncode, stdout=stdout, stderr=stderr)
        self._ignore_terminate = ignore_terminate
        self._exited = asyncio.Event()
        self._final: ProcessOutcome | None = None
        self.terminated = False
        self.killed = False
        self._runner = asyncio.ensure_future(self._run(delay, chunks, on_output))

    async def _run(self, delay: float, chunks: tuple[str, ...], on_output: Any) -> None:
        for chunk in chunks:
            if on_output is not None:
                on_output(chunk)
        await asyncio.sleep(delay)
        self._exit(self._outcome)

    def _exit(self, outcome: ProcessOutcome) -> None:
        if self._exited.is_set():
            return
        self._final = outcome
        self._exited.set()
        self._spawner.active -= 1

    async def wait(self) -> ProcessOutcome:
        await self._exited.wait()
        assert self._final is not None
        return self._final

    def terminate(self) -> None:
        self.terminated = True
        if not self._ignore_terminate:
            self._runner.cancel()
            self._exit(ProcessOutcome(returncode=-15, stdout="", stderr=""))

    def kill(self) -> None:
        self.killed = True
        self._runner.cancel()
        self._exit(ProcessOutcome(returncode=-9, stdout="", stderr=""))


class FakeSpawner:
    """Records spawned prompts; behaviour is scripted per prompt substring."""

    def __init__(self, scripts: dict[str, dict[str, Any]] | None = None, **defaults: Any) -> None:
        self.scripts = scripts or {}
        self.defaults = defaults
        self.prompts: list[str] = []
        self.working_dirs: list[str] = []
        self.handles: list[FakeHandle] = []
        self.active = 0
        self.max_active = 0

    async def spawn(self, prompt, working_dir, env=None, on_output=None):  # noqa: ARG002
        options = dict(self.defaults)
        for needle, script in self.scripts.items():
            if needle in prompt:
                options.update(script)
                break
        error = options.pop("error", None)
        if error is not None:
            raise error
        self.prompts.append(prompt)
        self.working_dirs.append(working_dir)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        handle = FakeHandle(self, on_output=on_output, **options)
        self.handles.append(handle)
        return handle


@pytest.fixture
def fake_spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def make_spawner():
    return FakeSpawner
