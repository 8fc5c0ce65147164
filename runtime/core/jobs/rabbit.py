"""The rabbit job: record the firing time of every tick.

Each tick borrows one statement from the shared database, inserts exactly one
row stamped with the current UTC time, and gives the statement back. A failed
write is logged and swallowed at the tick boundary; the tick is not retried.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable

from errors import AlertRabbitError, TickExecutionError
from scheduler.task import InvocationContext, Task
from storage.interfaces import SharedResource
from storage.sqlite import INSERT_TICK_SQL
from utils import format_rfc3339, utcnow

logger = logging.getLogger(__name__)


class RabbitTask(Task[SharedResource]):
    def __init__(self, *, now: Callable[[], datetime] = utcnow):
        self._now = now

    @property
    def name(self) -> str:
        return "rabbit"

    def execute(self, context: InvocationContext[SharedResource]) -> None:
        try:
            self._record(context)
        except TickExecutionError:
            logger.exception(
                "tick_write_failed",
                extra={"event": "tick_write_failed", "job_id": context.job_id, "tick": context.tick},
            )
            return
        logger.info(
            "rabbit_runs",
            extra={"event": "rabbit_runs", "job_id": context.job_id, "tick": context.tick},
        )

    def _record(self, context: InvocationContext[SharedResource]) -> None:
        created_date = format_rfc3339(self._now())
        try:
            with context.resource.statement() as cur:
                cur.execute(INSERT_TICK_SQL, (created_date,))
        except (sqlite3.Error, AlertRabbitError) as e:
            raise TickExecutionError(context.job_id, context.tick, str(e)) from e
