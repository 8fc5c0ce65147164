"""Pytest configuration and fixtures."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
import yaml

from config.settings import RuntimeConfig, load_runtime_config
from scheduler.task import InvocationContext, Task
from storage.interfaces import SharedResource, TickRecord
from storage.sqlite import SQLiteDatabase


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


class RecordingTask(Task[Any]):
    """Task that remembers every context it was invoked with."""

    def __init__(self, action: Callable[[InvocationContext[Any]], None] | None = None):
        self.contexts: list[InvocationContext[Any]] = []
        self._action = action
        self._lock = threading.Lock()
        self.fired = threading.Event()

    def execute(self, context: InvocationContext[Any]) -> None:
        with self._lock:
            self.contexts.append(context)
        self.fired.set()
        if self._action is not None:
            self._action(context)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self.contexts)


class FlakyResource(SharedResource):
    """Wraps a real database and fails chosen statement() calls (1-based)."""

    def __init__(self, inner: SQLiteDatabase, fail_on: set[int]):
        self.inner = inner
        self.fail_on = set(fail_on)
        self.calls = 0
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.inner.is_open

    def open(self) -> "FlakyResource":
        self.inner.open()
        return self

    def close(self) -> None:
        self.close_calls += 1
        self.inner.close()

    @contextmanager
    def statement(self) -> Iterator[sqlite3.Cursor]:
        self.calls += 1
        if self.calls in self.fail_on:
            raise sqlite3.OperationalError("database is locked")
        with self.inner.statement() as cur:
            yield cur

    def fetch_ticks(self) -> list[TickRecord]:
        return self.inner.fetch_ticks()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "rabbit.sqlite"


@pytest.fixture
def sqlite_db(db_path: Path) -> Iterator[SQLiteDatabase]:
    """Opened database, closed after the test."""
    db = SQLiteDatabase(db_path).open()
    yield db
    db.close()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a rabbit.yaml into tmp_path and return its path."""

    def _write(interval: Any = "2", run_window: Any = 10, url: str = "sqlite:///state/rabbit.sqlite", **extra: Any) -> Path:
        doc: dict[str, Any] = {
            "storage": {"driver": "sqlite", "connection-url": url, "username": "", "password": ""},
            "rabbit": {"interval-seconds": interval},
            "lifecycle": {"run-window-seconds": run_window},
        }
        doc.update(extra)
        path = tmp_path / "rabbit.yaml"
        path.write_text(yaml.safe_dump(doc), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_config(write_config: Callable[..., Path]) -> Callable[..., RuntimeConfig]:
    def _make(**kwargs: Any) -> RuntimeConfig:
        return load_runtime_config(write_config(**kwargs))

    return _make
