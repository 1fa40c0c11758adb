"""Shared fixtures: a scripted fake launcher so the state machine runs without real processes."""

from __future__ import annotations

import asyncio
import signal

import pytest

from worker_supervisor.supervisor import Supervisor


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeWorker:
    """Stands in for WorkerProcess. exit_code=None keeps it running until signalled."""

    def __init__(self, generation: int, exit_code: int | None):
        self.generation = generation
        self.pid = 40000 + generation
        self.returncode: int | None = None
        self.relayed: list[int] = []
        self.uptime = 0
        self._exited = asyncio.Event()
        if exit_code is not None:
            asyncio.get_running_loop().call_soon(self.exit, exit_code)

    def exit(self, code: int):
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    def is_alive(self) -> bool:
        return self.returncode is None

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def relay_signal(self, sig: int = signal.SIGTERM) -> bool:
        if not self.is_alive():
            return False
        self.relayed.append(sig)
        self.exit(-sig)
        return True

    def uptime_seconds(self) -> int:
        return self.uptime

    def resource_usage(self) -> dict:
        return {"cpu_percent": 0.0, "memory_mb": 0.0, "child_processes": 0}


class FakeLauncher:
    """
    Replays a script of outcomes, one per spawn; the last entry repeats.

    An int is the worker's exit code, None keeps it running, and an exception
    instance is raised from spawn() as a process-creation failure. When
    hold_restarts is set, every spawn after the first waits on it.
    """

    def __init__(self, script):
        self.script = list(script)
        self.workers: list[FakeWorker] = []
        self.attempts = 0
        self.hold_restarts: asyncio.Event | None = None
        self.restart_spawning = asyncio.Event()

    async def spawn(self, generation: int) -> FakeWorker:
        if self.hold_restarts is not None and self.attempts > 0:
            self.restart_spawning.set()
            await self.hold_restarts.wait()
        outcome = self.script[min(self.attempts, len(self.script) - 1)]
        self.attempts += 1
        if isinstance(outcome, BaseException):
            raise outcome
        worker = FakeWorker(generation, outcome)
        self.workers.append(worker)
        return worker


@pytest.fixture
def make_supervisor():
    """Build a supervisor over a FakeLauncher: make_supervisor(script, **kwargs)."""

    def factory(script, max_restarts=5, restart_delay=0.0, **kwargs):
        launcher = FakeLauncher(script)
        supervisor = Supervisor(
            launcher, max_restarts=max_restarts, restart_delay=restart_delay, **kwargs
        )
        return supervisor, launcher

    return factory
