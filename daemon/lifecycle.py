"""Daemon lifecycle controller.

    stopped -> starting -> running -> stopping -> stopped

``start()`` loads task definitions, activates the scheduler and records this
process in the PID file. ``stop()`` deactivates every handle and removes the
PID file. ``reload()`` is a stop followed by a start: every task is re-read
and re-scheduled from scratch.

``serve()`` is the daemon main loop: it wires SIGTERM/SIGINT to a graceful
stop and SIGHUP to a reload, then waits until a stop is requested. On the
way out, runs still in flight get ``drain_timeout`` seconds to finish before
the PID file is removed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from enum import Enum
from typing import Callable

from core.errors import FatalSetup
from core.models.tasks import TaskDefinition
from daemon.pidfile import PidFile
from scheduler.runner import ScheduledTaskHandle, Scheduler

logger = logging.getLogger(__name__)

TaskSource = Callable[[], list[TaskDefinition]]


class DaemonState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


_ALLOWED = {
    DaemonState.STOPPED: {DaemonState.STARTING},
    DaemonState.STARTING: {DaemonState.RUNNING, DaemonState.STOPPED},
    DaemonState.RUNNING: {DaemonState.STOPPING},
    DaemonState.STOPPING: {DaemonState.STOPPED},
}


class DaemonController:
    """Sole owner of the daemon state and the PID file."""

    def __init__(
        self,
        scheduler: Scheduler,
        load_tasks: TaskSource,
        pid_file: PidFile,
        drain_timeout: float = 4.0,
    ) -> None:
        self._scheduler = scheduler
        self._load_tasks = load_tasks
        self._pid_file = pid_file
        self._drain_timeout = max(0.0, float(drain_timeout))
        self._state = DaemonState.STOPPED
        self._wakeup: asyncio.Event | None = None
        self._stop_requested = False
        self._reload_requested = False

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def _transition(self, new: DaemonState) -> None:
        if new not in _ALLOWED[self._state]:
            raise RuntimeError(f"Illegal daemon transition {self._state.value} -> {new.value}")
        logger.debug("Daemon state: %s -> %s", self._state.value, new.value)
        self._state = new

    async def start(self) -> list[ScheduledTaskHandle]:
        """Load tasks, activate them and persist our PID.

        Raises:
            FatalSetup: another daemon is alive or the PID file can't be written.
        """
        if self._state is not DaemonState.STOPPED:
            logger.warning("Start ignored: daemon is %s", self._state.value)
            return []

        self._transition(DaemonState.STARTING)
        try:
            other = self._pid_file.live_pid()
            if other is not None and other != os.getpid():
                raise FatalSetup(f"Another daemon is already running (PID {other})")
            if self._pid_file.path.exists() and other is None:
                logger.info("Overwriting stale PID file %s", self._pid_file.path)

            tasks = self._load_tasks()
            handles = self._scheduler.activate(tasks)
            self._pid_file.write()
        except BaseException:
            self._scheduler.deactivate()
            self._transition(DaemonState.STOPPED)
            raise

        self._transition(DaemonState.RUNNING)
        logger.info("Daemon started (PID %d), %d task(s) scheduled", os.getpid(), len(handles))
        return handles

    async def stop(self, drain: bool = False) -> None:
        """Deactivate every handle and remove the PID file.

        With ``drain``, in-flight runs get up to ``drain_timeout`` seconds to
        finish first. A reload never drains.
        """
        if self._state is not DaemonState.RUNNING:
            return

        self._transition(DaemonState.STOPPING)
        try:
            self._scheduler.deactivate()
            if drain:
                await self._drain()
        finally:
            self._transition(DaemonState.STOPPED)
            if self._pid_file.read() == os.getpid():
                self._pid_file.remove()
        logger.info("Daemon stopped")

    async def _drain(self) -> None:
        pending = self._scheduler.inflight
        if not pending:
            return
        logger.info(
            "Waiting up to %.1fs for %d run(s) in flight", self._drain_timeout, pending,
        )
        if not await self._scheduler.wait_idle(timeout=self._drain_timeout):
            logger.warning(
                "%d run(s) still in flight at shutdown, abandoning them",
                self._scheduler.inflight,
            )

    async def reload(self) -> list[ScheduledTaskHandle]:
        logger.info("Reloading daemon...")
        await self.stop()
        handles = await self.start()
        logger.info("Daemon reloaded")
        return handles

    # ------------------------------------------------------------------
    # Main loop and signals
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        self._stop_requested = True
        if self._wakeup is not None:
            self._wakeup.set()

    def request_reload(self) -> None:
        self._reload_requested = True
        if self._wakeup is not None:
            self._wakeup.set()

    async def serve(self) -> None:
        """Start, then block until a stop is requested; always stop on the way out."""
        loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._stop_requested = False
        installed = self._install_signal_handlers(loop)

        try:
            await self.start()
            while not self._stop_requested:
                await self._wakeup.wait()
                self._wakeup.clear()
                if self._stop_requested:
                    break
                if self._reload_requested:
                    self._reload_requested = False
                    await self.reload()
        finally:
            await self.stop(drain=True)
            for sig in installed:
                loop.remove_signal_handler(sig)
            self._wakeup = None

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[int]:
        wanted = [
            (signal.SIGTERM, self.request_stop),
            (signal.SIGINT, self.request_stop),
        ]
        if hasattr(signal, "SIGHUP"):
            wanted.append((signal.SIGHUP, self.request_reload))

        installed = []
        for sig, callback in wanted:
            try:
                loop.add_signal_handler(sig, callback)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows / non-main thread: fall back to KeyboardInterrupt
                logger.debug("Signal handler for %s not installed", sig)
                continue
            installed.append(sig)
        return installed
