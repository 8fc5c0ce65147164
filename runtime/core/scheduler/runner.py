"""Interval scheduler.

This module keeps the runtime modular:
- Callers register (Task, Schedule) pairs
- The dispatch loop decides which registration is due
- Worker threads run the task for one tick

Dispatch rules:
- One dispatch thread waits on a condition until the earliest next-fire time.
- Fire times are fixed-phase (start + n * period); a slow tick delays the next
  one but never shifts the phase.
- A registration with a tick in flight is not dispatched again until that tick
  returns, so ticks of one registration never overlap and are strictly ordered.
- A tick that raises is logged and counted; the registration stays active.
- shutdown() is cooperative: it waits for in-flight ticks, and no tick starts
  after it returns.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

from errors import LifecycleError
from scheduler.state_machine import SchedulerState, accepts_registrations, apply_transition
from scheduler.task import InvocationContext, Task
from scheduler.trigger import Schedule
from utils import utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Upper bound on one condition wait; the loop re-evaluates due registrations after it.
_MAX_WAIT_SECONDS = min(threading.TIMEOUT_MAX, 3600.0)


@dataclass
class _Registration:
    job_id: str
    task: Task[Any]
    schedule: Schedule
    resource: Any
    next_fire: float | None = None
    fired: int = 0
    failures: int = 0
    in_flight: bool = False

    def activate(self, now: float) -> None:
        self.schedule = self.schedule.anchored(now)
        self.next_fire = self.schedule.fire_time(self.fired)


@dataclass(frozen=True)
class JobSnapshot:
    job_id: str
    task: str
    period: float
    next_fire: float | None
    ticks: int
    failures: int
    in_flight: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "period": self.period,
            "next_fire": self.next_fire,
            "ticks": self.ticks,
            "failures": self.failures,
            "in_flight": self.in_flight,
        }


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    _scheduler: "Scheduler" = field(repr=False, compare=False)

    def cancel(self) -> bool:
        return self._scheduler.cancel(self.job_id)


class Scheduler:
    def __init__(self, *, clock: Clock = time.monotonic, max_workers: int = 4, name: str = "alert-rabbit"):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._clock = clock
        self._max_workers = max_workers
        self._name = name
        self._state = SchedulerState.CREATED
        self._cond = threading.Condition()
        self._registrations: dict[str, _Registration] = {}
        self._ids = itertools.count(1)
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None

    @property
    def state(self) -> SchedulerState:
        with self._cond:
            return self._state

    def schedule(self, task: Task[Any], schedule: Schedule, *, resource: Any = None, job_id: str | None = None) -> JobHandle:
        """Register a task; it fires at schedule.start (or as soon as the scheduler runs) and every period after."""
        with self._cond:
            if not accepts_registrations(self._state):
                raise LifecycleError(
                    self._state.value, "schedule", f"Cannot schedule jobs while scheduler is {self._state.value}"
                )
            job_id = job_id or f"{task.name}-{next(self._ids)}"
            if job_id in self._registrations:
                raise LifecycleError(self._state.value, "schedule", f"Job already scheduled: {job_id}")

            reg = _Registration(job_id=job_id, task=task, schedule=schedule, resource=resource)
            if self._state is SchedulerState.RUNNING:
                reg.activate(self._clock())
            self._registrations[job_id] = reg
            self._cond.notify_all()

        logger.info(
            "job_scheduled",
            extra={"event": "job_scheduled", "job_id": job_id, "task": task.name, "interval_seconds": schedule.period},
        )
        return JobHandle(job_id=job_id, _scheduler=self)

    def cancel(self, job_id: str) -> bool:
        """Remove a registration. An in-flight tick finishes; no new tick starts."""
        with self._cond:
            reg = self._registrations.pop(job_id, None)
            self._cond.notify_all()
        if reg is None:
            return False
        logger.info("job_cancelled", extra={"event": "job_cancelled", "job_id": job_id})
        return True

    def start(self) -> None:
        with self._cond:
            self._state = apply_transition(self._state, SchedulerState.RUNNING)
            now = self._clock()
            for reg in self._registrations.values():
                reg.activate(now)
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix=f"{self._name}-worker")
            self._thread = threading.Thread(target=self._dispatch_loop, name=f"{self._name}-dispatch", daemon=True)
            self._thread.start()
        logger.info("scheduler_started", extra={"event": "scheduler_started", "state": SchedulerState.RUNNING.value})

    def shutdown(self) -> None:
        """Stop dispatching, wait for in-flight ticks, then mark the scheduler stopped. Idempotent."""
        with self._cond:
            if self._state in (SchedulerState.SHUTTING_DOWN, SchedulerState.STOPPED):
                return
            if self._state is SchedulerState.CREATED:
                self._state = apply_transition(self._state, SchedulerState.STOPPED)
                logger.info("scheduler_stopped", extra={"event": "scheduler_stopped", "state": self._state.value})
                return
            self._state = apply_transition(self._state, SchedulerState.SHUTTING_DOWN)
            self._cond.notify_all()

        logger.info("scheduler_shutting_down", extra={"event": "scheduler_shutting_down", "state": SchedulerState.SHUTTING_DOWN.value})
        if self._thread is not None:
            self._thread.join()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

        with self._cond:
            self._state = apply_transition(self._state, SchedulerState.STOPPED)
        logger.info("scheduler_stopped", extra={"event": "scheduler_stopped", "state": SchedulerState.STOPPED.value})

    def wakeup(self) -> None:
        """Make the dispatch loop re-evaluate due registrations now (e.g. after a clock adjustment)."""
        with self._cond:
            self._cond.notify_all()

    def jobs(self) -> list[JobSnapshot]:
        with self._cond:
            return [
                JobSnapshot(
                    job_id=r.job_id,
                    task=r.task.name,
                    period=r.schedule.period,
                    next_fire=r.next_fire,
                    ticks=r.fired,
                    failures=r.failures,
                    in_flight=r.in_flight,
                )
                for r in self._registrations.values()
            ]

    def health(self) -> dict[str, Any]:
        with self._cond:
            return {
                "name": self._name,
                "state": self._state.value,
                "jobs": len(self._registrations),
                "dispatch_alive": self._thread is not None and self._thread.is_alive(),
                "in_flight": sum(1 for r in self._registrations.values() if r.in_flight),
            }

    def _dispatch_loop(self) -> None:
        try:
            self._dispatch_until_stopped()
        except Exception:
            logger.exception("dispatch_failed", extra={"event": "dispatch_failed", "state": self._state.value})
            raise

    def _dispatch_until_stopped(self) -> None:
        with self._cond:
            while self._state is SchedulerState.RUNNING:
                now = self._clock()
                timeout: float | None = None
                for reg in sorted(self._registrations.values(), key=lambda r: r.next_fire or 0.0):
                    if reg.in_flight or reg.next_fire is None or reg.schedule.is_exhausted(reg.fired):
                        continue
                    if reg.next_fire <= now:
                        self._dispatch(reg)
                    else:
                        wait = reg.next_fire - now
                        timeout = wait if timeout is None else min(timeout, wait)
                if timeout is not None:
                    timeout = min(timeout, _MAX_WAIT_SECONDS)
                self._cond.wait(timeout)

    def _dispatch(self, reg: _Registration) -> None:
        # Caller holds self._cond.
        if self._executor is None or reg.next_fire is None:
            raise LifecycleError(self._state.value, "dispatch", f"Job {reg.job_id} is not active")
        scheduled_for = reg.next_fire
        reg.fired += 1
        reg.next_fire = reg.schedule.fire_time(reg.fired)
        reg.in_flight = True
        ctx: InvocationContext[Any] = InvocationContext(
            resource=reg.resource,
            job_id=reg.job_id,
            tick=reg.fired,
            scheduled_for=scheduled_for,
            fired_at=utcnow(),
        )
        self._executor.submit(self._run_tick, reg, ctx)

    def _run_tick(self, reg: _Registration, ctx: InvocationContext[Any]) -> None:
        failed = False
        try:
            reg.task.execute(ctx)
        except Exception:
            failed = True
            logger.exception("tick_failed", extra={"event": "tick_failed", "job_id": ctx.job_id, "tick": ctx.tick})
        finally:
            with self._cond:
                reg.in_flight = False
                if failed:
                    reg.failures += 1
                if reg.schedule.is_exhausted(reg.fired) and self._registrations.get(reg.job_id) is reg:
                    del self._registrations[reg.job_id]
                    logger.info("job_completed", extra={"event": "job_completed", "job_id": reg.job_id})
                self._cond.notify_all()
        logger.debug(
            "tick_finished",
            extra={"event": "tick_finished", "job_id": ctx.job_id, "tick": ctx.tick, "scheduled_for": ctx.scheduled_for},
        )
