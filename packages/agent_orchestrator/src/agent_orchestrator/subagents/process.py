"""Isolated sub-agent processes.

Each sub-agent runs as a separate CLI process in its own working directory,
started with the task prompt and streaming its output back through pipes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from agent_orchestrator.utils import strip_ansi

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

OUTPUT_UPDATE_INTERVAL = 1.0
DRAIN_TIMEOUT = 0.2


@dataclass(frozen=True)
class ProcessOutcome:
    """Exit information and captured output of a finished process."""

    returncode: int | None
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def signal_name(self) -> str | None:
        """Name of the terminating signal, when the process was killed by one."""
        if self.returncode is None or self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return f"signal {-self.returncode}"


class ProcessHandle(Protocol):
    """Running sub-agent process."""

    async def wait(self) -> ProcessOutcome: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ProcessSpawner(Protocol):
    """Starts sub-agent processes."""

    async def spawn(
        self,
        prompt: str,
        working_dir: str,
        env: Mapping[str, str] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> ProcessHandle: ...


class SubprocessHandle:
    """``ProcessHandle`` over an ``asyncio.subprocess.Process``."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        on_output: Callable[[str], None] | None = None,
        update_interval: float = OUTPUT_UPDATE_INTERVAL,
        drain_timeout: float = DRAIN_TIMEOUT,
    ) -> None:
        self._process = process
        self._drain_timeout = drain_timeout
        self._on_output = on_output
        self._update_interval = update_interval
        self._last_update = 0.0
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._readers = [
            asyncio.ensure_future(self._pump(process.stdout, self._stdout, is_error=False)),
            asyncio.ensure_future(self._pump(process.stderr, self._stderr, is_error=True)),
        ]

    @property
    def pid(self) -> int:
        return self._process.pid

    async def _pump(
        self, stream: asyncio.StreamReader | None, sink: list[str], *, is_error: bool
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace")
            sink.append(text)
            self._report(text, is_error=is_error)

    def _report(self, text: str, *, is_error: bool) -> None:
        if self._on_output is None:
            return
        if is_error:
            self._on_output(f"[stderr] {strip_ansi(text)}")
            return
        now = time.monotonic()
        if now - self._last_update > self._update_interval:
            self._last_update = now
            self._on_output(strip_ansi(text))

    async def wait(self) -> ProcessOutcome:
        returncode = await self._process.wait()
        # Descendants that outlive the process can hold the pipes open indefinitely.
        drained = asyncio.gather(*self._readers, return_exceptions=True)
        try:
            await asyncio.wait_for(asyncio.shield(drained), self._drain_timeout)
        except TimeoutError:
            logger.debug("Output of pid %s still open after exit; closing readers", self.pid)
            for reader in self._readers:
                reader.cancel()
            await drained
        return ProcessOutcome(
            returncode=returncode,
            stdout=strip_ansi("".join(self._stdout)),
            stderr=strip_ansi("".join(self._stderr)),
        )

    def terminate(self) -> None:
        self._signal_group(signal.SIGTERM)

    def kill(self) -> None:
        self._signal_group(signal.SIGKILL)

    def _signal_group(self, signum: signal.Signals) -> None:
        """Signal the process and everything it started in its session."""
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(self._process.pid, signum)


class SubprocessSpawner:
    """Spawn sub-agents as ``<command...> <prompt_flag> <prompt>`` processes."""

    def __init__(
        self,
        command: Sequence[str],
        prompt_flag: str = "-p",
        drain_timeout: float = DRAIN_TIMEOUT,
    ) -> None:
        if not command:
            msg = "Sub-agent command must not be empty"
            raise ValueError(msg)
        self._command = list(command)
        self._prompt_flag = prompt_flag
        self._drain_timeout = drain_timeout

    def build_args(self, prompt: str) -> list[str]:
        args = list(self._command)
        if self._prompt_flag:
            args.append(self._prompt_flag)
        args.append(prompt)
        return args

    async def spawn(
        self,
        prompt: str,
        working_dir: str,
        env: Mapping[str, str] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> SubprocessHandle:
        args = self.build_args(prompt)
        process_env = dict(os.environ)
        if env:
            process_env.update(env)
        logger.debug("Spawning sub-agent %s in %s", args[0], working_dir)
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=working_dir,
            env=process_env,
            start_new_session=True,
        )
        return SubprocessHandle(process, on_output=on_output, drain_timeout=self._drain_timeout)
