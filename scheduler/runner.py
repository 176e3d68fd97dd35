"""Scheduler runner -- turns task schedules into live asyncio triggers.

For every task handed to ``activate()``:
1. Parses its duration string into a Schedule
2. Recurring -> an asyncio task that sleeps until the next cron match,
   dispatches the run, and repeats
3. OneTime -> a ``loop.call_later`` timer that retires its handle after firing
4. NoSchedule / rejected / already past -> skipped with a log line

Dispatch is fire-and-forget: a trigger never waits for the pipeline, so a
slow task cannot delay another task's fire time. Runs of the *same* task may
overlap when its interval is shorter than one run (``allow_overlap=False``
turns that into "skip while busy").
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfoNotFoundError

from core.duration import humanize
from core.models.schedule import NoSchedule, OneTime, Recurring, ScheduleRejection
from core.models.tasks import TaskDefinition
from core.schedule import parse_schedule
from scheduler.cron import CronSpec, next_fire_time, parse_cron

logger = logging.getLogger(__name__)

TaskRunner = Callable[[TaskDefinition], Awaitable[Any]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class ScheduledTaskHandle:
    """Live binding between one task and its trigger.

    ``trigger`` is whatever the scheduler armed (an ``asyncio.TimerHandle``
    for one-shot schedules, the cron ``asyncio.Task`` for recurring ones);
    the only thing the handle does with it is ``cancel()``.
    """

    task: TaskDefinition
    schedule: Recurring | OneTime
    spec: CronSpec | None = None
    trigger: Any = None
    active: bool = True
    fire_count: int = 0
    last_fired_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def name(self) -> str:
        return self.task.name

    @property
    def recurring(self) -> bool:
        return isinstance(self.schedule, Recurring)

    def next_fire_at(self, now: datetime | None = None) -> datetime | None:
        if not self.active:
            return None
        now = now or _utcnow()
        if isinstance(self.schedule, OneTime):
            return self.schedule.target
        return next_fire_time(self.spec or self.schedule.cron_expression, now, self.schedule.timezone)

    def time_until_next_fire(self, now: datetime | None = None) -> timedelta | None:
        """Recomputed on every call; None once the handle is retired."""
        now = now or _utcnow()
        next_at = self.next_fire_at(now)
        if next_at is None:
            return None
        return max(next_at - now, timedelta(0))

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self.trigger is not None:
            self.trigger.cancel()


class Scheduler:
    """Owns the set of live handles. Only activate/deactivate mutate it.

    Usage:
        scheduler = Scheduler(runner=pipeline.run, timezone="Europe/Berlin")
        scheduler.activate(tasks)   # needs a running event loop
        ...
        scheduler.deactivate()
    """

    def __init__(
        self,
        runner: TaskRunner,
        timezone: str = "UTC",
        heartbeat_interval: float = 300.0,
        allow_overlap: bool = True,
        clock: Clock = _utcnow,
    ) -> None:
        self._runner = runner
        self._timezone = timezone
        self._heartbeat_interval = max(1.0, float(heartbeat_interval))
        self._allow_overlap = allow_overlap
        self._clock = clock
        self._handles: list[ScheduledTaskHandle] = []
        self._inflight: set[asyncio.Task] = set()
        self._busy: Counter[str] = Counter()
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def handles(self) -> tuple[ScheduledTaskHandle, ...]:
        """Snapshot of the live handles."""
        return tuple(self._handles)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate(self, tasks: list[TaskDefinition]) -> list[ScheduledTaskHandle]:
        """Arm a trigger for every schedulable task; return the new handles."""
        loop = asyncio.get_running_loop()
        created: list[ScheduledTaskHandle] = []

        for task in tasks:
            try:
                handle = self._activate_one(task, loop)
            except Exception:
                logger.exception("Task %s not scheduled: activation failed", task.name)
                continue
            if handle is not None:
                self._handles.append(handle)
                created.append(handle)

        self._start_heartbeat()
        logger.info("Scheduler activated %d of %d task(s)", len(created), len(tasks))
        return created

    def _activate_one(
        self, task: TaskDefinition, loop: asyncio.AbstractEventLoop
    ) -> ScheduledTaskHandle | None:
        schedule = parse_schedule(task.duration, self._timezone)

        if isinstance(schedule, ScheduleRejection):
            logger.warning("Task %s not scheduled: %s", task.name, schedule)
            return None

        if isinstance(schedule, NoSchedule):
            logger.info("Task %s not scheduled: no duration specified", task.name)
            return None

        now = self._clock()

        if isinstance(schedule, OneTime):
            delay = schedule.delay(now).total_seconds()
            if delay <= 0:
                logger.info("Task %s skipped: past date (%s)", task.name, schedule.target.isoformat())
                return None
            handle = ScheduledTaskHandle(task=task, schedule=schedule)
            handle.trigger = loop.call_later(delay, self._fire_once, handle)
            logger.info("Task %s scheduled %s (in %s)", task.name, schedule.describe(), humanize(timedelta(seconds=delay)))
            return handle

        try:
            spec = parse_cron(schedule.cron_expression)
            first = next_fire_time(spec, now, schedule.timezone)
        except (ValueError, ZoneInfoNotFoundError) as exc:
            logger.error(
                "Task %s not scheduled: invalid cron schedule %r (%s)",
                task.name, schedule.cron_expression, exc,
            )
            return None

        handle = ScheduledTaskHandle(task=task, schedule=schedule, spec=spec)
        handle.trigger = loop.create_task(self._cron_loop(handle), name=f"cron:{task.name}")
        logger.info(
            "Task %s scheduled %s (next run %s)",
            task.name, schedule.describe(), first.isoformat(timespec="minutes"),
        )
        return handle

    # ------------------------------------------------------------------
    # Deactivation
    # ------------------------------------------------------------------

    def deactivate(self, handles: list[ScheduledTaskHandle] | None = None) -> int:
        """Cancel the given handles (all by default). In-flight runs continue.

        The heartbeat stops once no handle is left. Returns how many handles
        were cancelled.
        """
        targets = list(self._handles) if handles is None else list(handles)
        cancelled = 0
        for handle in targets:
            if handle.active:
                cancelled += 1
            handle.cancel()
            if handle in self._handles:
                self._handles.remove(handle)

        if not self._handles:
            self._stop_heartbeat()

        if cancelled:
            logger.info("Scheduler deactivated %d task(s)", cancelled)
        return cancelled

    # ------------------------------------------------------------------
    # Triggers and dispatch
    # ------------------------------------------------------------------

    async def _cron_loop(self, handle: ScheduledTaskHandle) -> None:
        schedule = handle.schedule
        last_fire: datetime | None = None
        while handle.active:
            now = self._clock()
            anchor = now if last_fire is None or now > last_fire else last_fire
            next_at = next_fire_time(handle.spec, anchor, schedule.timezone)
            await asyncio.sleep(max((next_at - now).total_seconds(), 0))
            if not handle.active:
                return
            last_fire = next_at
            handle.fire_count += 1
            handle.last_fired_at = self._clock()
            logger.info("Firing task %s (%s)", handle.name, schedule.describe())
            self._dispatch(handle.task)

    def _fire_once(self, handle: ScheduledTaskHandle) -> None:
        if not handle.active:
            return
        handle.active = False
        handle.fire_count += 1
        handle.last_fired_at = self._clock()
        if handle in self._handles:
            self._handles.remove(handle)
        logger.info("Firing one-time task %s", handle.name)
        self._dispatch(handle.task)

    def _dispatch(self, task: TaskDefinition) -> asyncio.Task | None:
        if not self._allow_overlap and self._busy[task.name]:
            logger.warning("Skipping %s: previous run still in progress", task.name)
            return None

        # Busy from dispatch on, so fires in the same loop turn see each other
        self._busy[task.name] += 1
        job = asyncio.get_running_loop().create_task(self._run_task(task), name=f"run:{task.name}")
        self._inflight.add(job)
        job.add_done_callback(self._inflight.discard)
        job.add_done_callback(lambda _job, name=task.name: self._release(name))
        return job

    def _release(self, name: str) -> None:
        self._busy[name] -= 1
        if self._busy[name] <= 0:
            del self._busy[name]

    async def _run_task(self, task: TaskDefinition) -> Any:
        try:
            return await self._runner(task)
        except Exception:
            logger.exception("Task %s crashed", task.name)
            return None

    async def run_now(self, task: TaskDefinition) -> Any:
        """Run a task immediately, bypassing scheduling.

        Unlike a scheduled fire, a crash in the runner propagates to the caller.
        """
        logger.info("Manual run of task %s", task.name)
        self._busy[task.name] += 1
        try:
            return await self._runner(task)
        finally:
            self._release(task.name)

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for in-flight runs to finish; False if the timeout hit first."""
        if not self._inflight:
            return True
        done, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
        return not pending

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def soonest(self, now: datetime | None = None) -> tuple[ScheduledTaskHandle, timedelta] | None:
        """Recurring handle that fires next, with the time left."""
        now = now or self._clock()
        best: tuple[ScheduledTaskHandle, timedelta] | None = None
        for handle in self._handles:
            if not handle.recurring or not handle.active:
                continue
            left = handle.time_until_next_fire(now)
            if left is not None and (best is None or left < best[1]):
                best = (handle, left)
        return best

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.get_running_loop().create_task(
                self._heartbeat_loop(), name="scheduler-heartbeat"
            )

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                self._beat()
            except Exception:
                logger.exception("Heartbeat failed")

    def _beat(self) -> None:
        upcoming = self.soonest()
        if upcoming is None:
            logger.debug("Heartbeat: %d handle(s), no recurring task pending", len(self._handles))
            return
        handle, left = upcoming
        logger.info(
            "Heartbeat: %d handle(s), %d run(s) in flight, next is %s in %s",
            len(self._handles), len(self._inflight), handle.name, humanize(left),
        )

    def snapshot(self, now: datetime | None = None) -> list[dict]:
        """Plain-dict view of the handles for the status API."""
        now = now or self._clock()
        out = []
        for handle in self._handles:
            left = handle.time_until_next_fire(now)
            out.append({
                "name": handle.name,
                "schedule": handle.schedule.kind,
                "description": handle.schedule.describe(),
                "seconds_until_next_fire": None if left is None else int(left.total_seconds()),
                "fire_count": handle.fire_count,
            })
        return out
