"""
Single-worker supervisor.

Owns one worker process for the lifetime of the supervisor: spawns it,
observes its exit, restarts it after a fixed delay while the restart budget
lasts, and relays termination signals. Exit watchers and signal handlers only
post events; every state change happens in dispatch(), driven from run().

A clean worker exit (status 0) is an intentional stop and is never retried.
"""

import asyncio
import logging
import signal
import time
from typing import Callable, Optional, Protocol

from .models import (
    ChildExited,
    ChildSpawnError,
    Event,
    ShutdownRequested,
    SignalKind,
    SupervisorState,
)
from .process import WorkerProcess

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_MAX_RETRIES = 1


class Launcher(Protocol):
    async def spawn(self, generation: int) -> WorkerProcess: ...


class Supervisor:
    """Lifecycle controller for a single worker process."""

    def __init__(
        self,
        launcher: Launcher,
        max_restarts: int = 5,
        restart_delay: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._launcher = launcher
        self._max_restarts = max_restarts
        self.restart_delay = restart_delay
        self._clock = clock
        self._started_at = clock()

        self.state = SupervisorState.STARTING
        self.child: Optional[WorkerProcess] = None
        self.restart_count = 0
        self.spawn_count = 0
        self.shutdown_requested = False
        self.exit_status: Optional[int] = None

        self._events: asyncio.Queue = asyncio.Queue()
        self._generation = 0
        self._decided_generation = 0
        self._restart_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def max_restarts(self) -> int:
        return self._max_restarts

    @property
    def started_at(self) -> float:
        return self._started_at

    def uptime_seconds(self) -> int:
        """Whole seconds since the supervisor was created."""
        return int(self._clock() - self._started_at)

    def post(self, event: Event):
        """Queue an event for the decision loop."""
        self._events.put_nowait(event)

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Route SIGINT and SIGTERM to a shutdown request."""
        loop = loop or asyncio.get_running_loop()
        for kind in SignalKind:
            loop.add_signal_handler(kind.value, self.post, ShutdownRequested(kind))
        logger.debug("Signal handlers registered (SIGINT, SIGTERM)")

    def remove_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        loop = loop or asyncio.get_running_loop()
        for kind in SignalKind:
            loop.remove_signal_handler(kind.value)

    async def run(self, on_started: Optional[Callable[["Supervisor"], None]] = None) -> int:
        """
        Start the worker and process events until a terminal state. Returns the exit status.

        on_started is called once, after the initial worker has been spawned.
        """
        await self.start()
        if on_started is not None and self.state is SupervisorState.RUNNING:
            on_started(self)

        while self.exit_status is None:
            event = await self._events.get()
            self.dispatch(event)

        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()

        logger.info(f"Supervisor stopped: {self.status()}")
        return self.exit_status

    async def start(self):
        """Spawn a new worker. A spawn failure is posted as ChildSpawnError."""
        if self.shutdown_requested or self.state.is_terminal:
            logger.debug("Supervisor is stopping, not starting worker")
            return
        if self.child is not None and self.child.is_alive():
            raise RuntimeError(f"Worker {self.child.pid} is still running")

        self.state = SupervisorState.STARTING
        self._generation += 1
        self.spawn_count += 1
        generation = self._generation

        try:
            child = await self._launcher.spawn(generation)
        except Exception as e:
            logger.error(f"Failed to start worker (spawn {generation}): {e}")
            self.post(ChildSpawnError(generation, e))
            return

        self.child = child
        if self.shutdown_requested:
            # Shutdown arrived while the process was being created
            child.relay_signal(signal.SIGTERM)
            return

        self.state = SupervisorState.RUNNING
        self._watch_task = asyncio.create_task(self._watch(child))

    def request_shutdown(self, kind: SignalKind = SignalKind.TERMINATE):
        """Stop supervising: relay SIGTERM to the worker and stop with status 0. Idempotent."""
        self.dispatch(ShutdownRequested(kind))

    def dispatch(self, event: Event):
        """Apply a single event to the state machine."""
        if isinstance(event, ShutdownRequested):
            self._on_shutdown(event.kind)
        elif self.state.is_terminal:
            logger.debug(f"Ignoring {event} in state {self.state.value}")
        elif isinstance(event, ChildExited):
            self._on_child_exit(event)
        elif isinstance(event, ChildSpawnError):
            self._on_child_error(event)
        else:
            raise TypeError(f"Unknown supervisor event: {event!r}")

    def status(self) -> dict:
        child = self.child
        result = {
            "state": self.state.value,
            "pid": child.pid if child is not None and child.is_alive() else None,
            "spawn_count": self.spawn_count,
            "restart_count": self.restart_count,
            "max_restarts": self.max_restarts,
            "uptime_seconds": self.uptime_seconds(),
        }
        if child is not None:
            result["worker_uptime_seconds"] = child.uptime_seconds() if child.is_alive() else 0
            result.update(child.resource_usage())
        return result

    def _claim(self, generation: int) -> bool:
        """True the first time an outcome for the current spawn is seen."""
        if generation != self._generation or generation <= self._decided_generation:
            logger.debug(f"Ignoring stale event for spawn {generation}")
            return False
        self._decided_generation = generation
        return True

    def _on_child_exit(self, event: ChildExited):
        if not self._claim(event.generation):
            return
        logger.info(f"Worker process exited with code {event.exit_code}")
        self._decide(event.exit_code == 0)

    def _on_child_error(self, event: ChildSpawnError):
        logger.error(f"Worker error (spawn {event.generation}): {event.error}")
        if not self._claim(event.generation):
            return
        self._decide(False)

    def _decide(self, clean: bool):
        if clean:
            self.state = SupervisorState.EXITED_CLEAN
            logger.info("Worker stopped cleanly, not restarting")
            self._finish(SupervisorState.STOPPED_CLEAN, EXIT_CLEAN)
            return

        self.state = SupervisorState.EXITED_ERROR
        if self.restart_count >= self.max_restarts:
            logger.error(
                f"Max restart attempts reached ({self.max_restarts}). Please check the logs."
            )
            self._finish(SupervisorState.STOPPED_MAX_RETRIES, EXIT_MAX_RETRIES)
            return

        self.restart_count += 1
        self.state = SupervisorState.RESTARTING
        logger.warning(
            f"Restarting worker (attempt {self.restart_count}/{self.max_restarts}) "
            f"in {self.restart_delay:g}s"
        )
        self._restart_task = asyncio.create_task(self._restart_after_delay())

    def _on_shutdown(self, kind: SignalKind):
        if self.shutdown_requested:
            return
        self.shutdown_requested = True
        logger.info(f"Received {kind.value.name}, shutting down worker supervisor")

        self._cancel_restart()
        if self.child is not None:
            self.child.relay_signal(signal.SIGTERM)
        if not self.state.is_terminal:
            self._finish(SupervisorState.STOPPED_BY_SIGNAL, EXIT_CLEAN)

    def _finish(self, state: SupervisorState, exit_status: int):
        self._cancel_restart()
        self.state = state
        self.exit_status = exit_status

    def _cancel_restart(self):
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None
            logger.info("Pending worker restart cancelled")

    async def _restart_after_delay(self):
        await asyncio.sleep(self.restart_delay)
        # Past this point the restart can no longer be cancelled
        self._restart_task = None
        self.state = SupervisorState.STARTING
        await self.start()

    async def _watch(self, child: WorkerProcess):
        try:
            exit_code = await child.wait()
        except Exception as e:
            # No exit event will follow; route as a failure and make sure the worker goes away
            child.relay_signal(signal.SIGTERM)
            self.post(ChildSpawnError(child.generation, e))
            return
        self.post(ChildExited(child.generation, exit_code))
