"""Task contract for scheduled work.

A Task is invoked once per tick with an InvocationContext that carries the
shared resource supplied at registration time. Tasks hold no per-tick state;
anything they acquire from the resource must be released before returning.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

R = TypeVar("R")


@dataclass(frozen=True)
class InvocationContext(Generic[R]):
    resource: R
    job_id: str
    tick: int  # 1-based
    scheduled_for: float  # scheduler clock value of the fixed-phase fire time
    fired_at: datetime


class Task(ABC, Generic[R]):
    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def execute(self, context: InvocationContext[R]) -> None:
        """Run one tick. Exceptions are caught and logged by the scheduler."""
