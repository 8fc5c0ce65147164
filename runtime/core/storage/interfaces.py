"""DB-agnostic storage interfaces.

The scheduler is stateless; the only persistent state is the rabbit table,
one row per tick. The shared resource defines the persistence boundary:
- opened once by the process lifecycle and closed once, after the scheduler stops
- handed to every tick by reference
- each tick borrows a scoped statement (cursor) and returns it before exiting

Concrete drivers live in `storage/` (SQLite is the only driver).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class TickRecord:
    id: int
    created_date: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "created_date": self.created_date}


class SharedResource(ABC):
    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True between open() and close()."""

    @abstractmethod
    def open(self) -> "SharedResource":
        """Connect and prepare the schema. Must raise ResourceConnectionError on failure."""

    @abstractmethod
    def close(self) -> None:
        """Release the handle. Calling it again is a no-op."""

    @abstractmethod
    def statement(self) -> AbstractContextManager[Any]:
        """Borrow a cursor scoped to one operation; it is closed on exit, success or failure."""

    @abstractmethod
    def fetch_ticks(self) -> Iterable[TickRecord]:
        """List recorded ticks in insertion order."""

    def __enter__(self) -> "SharedResource":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()
