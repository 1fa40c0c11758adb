"""
Worker process launching and handles.

Starts the worker as an asyncio subprocess with inherited stdin/stdout/stderr,
so its console output shows up through the supervisor unfiltered. The handle
exposes exit observation, signal relay and a psutil resource snapshot.
"""

import asyncio
import logging
import signal
from datetime import datetime
from pathlib import Path
from typing import Optional

import psutil

from .config import Config

logger = logging.getLogger(__name__)


class WorkerProcess:
    """A single spawned worker. Replaced, never reused, on restart."""

    def __init__(self, process: asyncio.subprocess.Process, generation: int):
        self._process = process
        self.generation = generation
        self.started_at = datetime.now()
        # psutil measures CPU between successive calls on the same objects
        self._children: dict[int, psutil.Process] = {}
        try:
            self._ps: Optional[psutil.Process] = psutil.Process(process.pid)
            self._ps.cpu_percent(interval=None)
        except psutil.NoSuchProcess:
            self._ps = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def is_alive(self) -> bool:
        return self._process.returncode is None

    def uptime_seconds(self) -> int:
        """Whole seconds since this worker was spawned."""
        return int((datetime.now() - self.started_at).total_seconds())

    async def wait(self) -> int:
        """Wait for the worker to terminate and return its exit code."""
        return await self._process.wait()

    def relay_signal(self, sig: int = signal.SIGTERM) -> bool:
        """Forward a signal to the worker. Returns False if it is already gone."""
        if not self.is_alive() or self._ps is None:
            logger.debug(f"Worker {self.pid} already exited, nothing to relay")
            return False
        try:
            self._ps.send_signal(sig)
        except psutil.NoSuchProcess:
            logger.debug(f"Worker {self.pid} vanished before signal could be relayed")
            return False
        logger.info(f"Relayed {signal.Signals(sig).name} to worker {self.pid}")
        return True

    def resource_usage(self) -> dict:
        """CPU and memory usage of the worker and its children since the previous call."""
        result = {"cpu_percent": 0.0, "memory_mb": 0.0, "child_processes": 0}
        if not self.is_alive() or self._ps is None:
            return result

        try:
            cpu_percent = self._ps.cpu_percent(interval=None)
            memory_mb = self._ps.memory_info().rss / 1024 / 1024

            # Include children (e.g. a node cluster)
            child_count = 0
            try:
                children = self._ps.children(recursive=True)
                child_count = len(children)
                known = {}
                for child in children:
                    tracked = self._children.get(child.pid, child)
                    known[child.pid] = tracked
                    cpu_percent += tracked.cpu_percent(interval=None)
                    memory_mb += tracked.memory_info().rss / 1024 / 1024
                self._children = known
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

            result.update({
                "cpu_percent": round(cpu_percent, 1),
                "memory_mb": round(memory_mb, 1),
                "child_processes": child_count,
            })
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        return result


class WorkerLauncher:
    """Spawns the configured worker command."""

    def __init__(self, config: Config):
        self.command = list(config.command)
        self.working_dir: Optional[Path] = config.working_dir
        self.env = config.worker_env()

    async def spawn(self, generation: int) -> WorkerProcess:
        """Start the worker. Raises OSError if the executable cannot be started."""
        process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=None,
            stdout=None,
            stderr=None,
            cwd=str(self.working_dir) if self.working_dir else None,
            env=self.env,
        )
        logger.info(f"Started worker {' '.join(self.command)} with PID {process.pid}")
        return WorkerProcess(process, generation)
