"""Process lifecycle: wire config, the shared database and the scheduler together.

Order of operations:
open database -> validate interval -> register the rabbit job -> start
-> wait out the run window (cut short by request_stop) -> shutdown -> close database

The database is closed by its context manager, strictly after the scheduler
has stopped, on every exit path.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from config.settings import RuntimeConfig, StorageConfig
from jobs.rabbit import RabbitTask
from scheduler.interval import validate_interval
from scheduler.runner import Clock, Scheduler
from scheduler.task import Task
from scheduler.trigger import Schedule
from storage.interfaces import SharedResource
from storage.sqlite import open_database

logger = logging.getLogger(__name__)

RABBIT_JOB_ID = "rabbit"

ResourceFactory = Callable[[StorageConfig], SharedResource]


class ProcessLifecycle:
    def __init__(
        self,
        config: RuntimeConfig,
        *,
        resource_factory: ResourceFactory = open_database,
        task: Task[Any] | None = None,
        clock: Clock = time.monotonic,
    ):
        self._config = config
        self._resource_factory = resource_factory
        self._task = task or RabbitTask()
        self._clock = clock
        self._stop = threading.Event()
        self._running = threading.Event()
        self._scheduler: Scheduler | None = None
        self._resource: SharedResource | None = None

    @property
    def scheduler(self) -> Scheduler | None:
        return self._scheduler

    @property
    def resource(self) -> SharedResource | None:
        return self._resource

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def request_stop(self) -> None:
        """Cut the run window short. Safe to call from signal handlers and other threads."""
        self._stop.set()

    def run(self) -> int:
        with self._resource_factory(self._config.storage) as resource:
            self._resource = resource
            try:
                interval = validate_interval(self._config.rabbit.interval_seconds)
                scheduler = Scheduler(clock=self._clock, max_workers=self._config.scheduler.max_workers)
                self._scheduler = scheduler
                scheduler.schedule(self._task, Schedule.every(interval), resource=resource, job_id=RABBIT_JOB_ID)

                scheduler.start()
                self._running.set()
                try:
                    self._wait_run_window()
                finally:
                    self._running.clear()
                    scheduler.shutdown()
            finally:
                self._resource = None
        logger.info("lifecycle_finished", extra={"event": "lifecycle_finished"})
        return 0

    def _wait_run_window(self) -> None:
        window = self._config.lifecycle.run_window_seconds
        logger.info("run_window_started", extra={"event": "run_window_started", "run_window_seconds": window})
        if self._stop.wait(window):
            logger.info("stop_requested", extra={"event": "stop_requested"})
        else:
            logger.info("run_window_elapsed", extra={"event": "run_window_elapsed"})
