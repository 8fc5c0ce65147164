"""Tests for the process lifecycle (end to end against a real SQLite file)."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import FlakyResource, RecordingTask
from errors import INTERVAL_MISSING, INTERVAL_TOO_SMALL, PARSE_FAILURE, ConfigurationError, ResourceConnectionError
from lifecycle.process import RABBIT_JOB_ID, ProcessLifecycle
from scheduler.state_machine import SchedulerState
from storage.sqlite import SQLiteDatabase, open_database
from utils import parse_rfc3339


class TestEndToEnd:
    def test_interval_two_window_five_records_three_ticks(self, make_config, db_path):
        """Ticks fire at t=0, 2 and 4 inside a 5 second window: three rows, two seconds apart."""
        lifecycle = ProcessLifecycle(make_config(interval="2", run_window=5))
        started = time.monotonic()
        assert lifecycle.run() == 0
        elapsed = time.monotonic() - started

        assert elapsed >= 5.0
        with SQLiteDatabase(db_path) as db:
            rows = db.fetch_ticks()
        assert len(rows) == 3
        stamps = [parse_rfc3339(r.created_date) for r in rows]
        gaps = [(b - a).total_seconds() for a, b in zip(stamps, stamps[1:])]
        assert all(g > 0 for g in gaps)
        assert all(abs(g - 2.0) < 0.5 for g in gaps)

    def test_resource_closed_after_scheduler_stopped(self, make_config, db_path):
        seen: dict = {}

        class Tracking(FlakyResource):
            def close(self):
                seen["scheduler_state"] = lifecycle.scheduler.state
                super().close()

        resource = Tracking(SQLiteDatabase(db_path), fail_on=set())
        lifecycle = ProcessLifecycle(make_config(interval="1", run_window=0.3), resource_factory=lambda _cfg: resource)
        lifecycle.run()

        assert resource.close_calls == 1
        assert seen["scheduler_state"] is SchedulerState.STOPPED
        assert lifecycle.resource is None
        assert not lifecycle.running

    def test_failed_write_does_not_cut_run_short(self, make_config, db_path):
        """One failing insert among the ticks: the others land and the window runs to the end."""
        resource = FlakyResource(SQLiteDatabase(db_path), fail_on={2})
        lifecycle = ProcessLifecycle(make_config(interval="1", run_window=2.5), resource_factory=lambda _cfg: resource)
        started = time.monotonic()
        lifecycle.run()
        elapsed = time.monotonic() - started

        assert elapsed >= 2.5
        assert resource.calls == 3
        with SQLiteDatabase(db_path) as db:
            assert len(db.fetch_ticks()) == 2


class TestStop:
    def test_request_stop_ends_window_early(self, make_config):
        task = RecordingTask()
        lifecycle = ProcessLifecycle(make_config(interval="1", run_window=None), task=task)
        thread = threading.Thread(target=lifecycle.run)
        thread.start()
        assert task.fired.wait(3.0)
        assert lifecycle.running
        assert lifecycle.scheduler.jobs()[0].job_id == RABBIT_JOB_ID

        lifecycle.request_stop()
        thread.join(timeout=3.0)
        assert not thread.is_alive()
        assert lifecycle.scheduler.state is SchedulerState.STOPPED

    def test_stop_requested_before_run(self, make_config):
        task = RecordingTask()
        lifecycle = ProcessLifecycle(make_config(interval="1", run_window=30), task=task)
        lifecycle.request_stop()
        started = time.monotonic()
        lifecycle.run()
        assert time.monotonic() - started < 5.0
        assert lifecycle.scheduler.state is SchedulerState.STOPPED


class TestStartupFailures:
    @pytest.mark.parametrize(
        "interval,reason",
        [("0", INTERVAL_TOO_SMALL), ("", INTERVAL_MISSING), ("abc", PARSE_FAILURE), (None, INTERVAL_MISSING)],
    )
    def test_invalid_interval_aborts_before_scheduling(self, make_config, db_path, interval, reason):
        opened: list = []

        def factory(cfg):
            db = open_database(cfg)
            opened.append(db)
            return db

        lifecycle = ProcessLifecycle(make_config(interval=interval), resource_factory=factory)
        with pytest.raises(ConfigurationError) as exc:
            lifecycle.run()
        assert exc.value.reason == reason
        assert lifecycle.scheduler is None
        assert not opened[0].is_open

    def test_connection_failure_is_fatal(self, make_config):
        def factory(_cfg):
            raise ResourceConnectionError("cannot connect")

        lifecycle = ProcessLifecycle(make_config(interval="1"), resource_factory=factory)
        with pytest.raises(ResourceConnectionError):
            lifecycle.run()
        assert lifecycle.scheduler is None

    def test_unopenable_database(self, make_config, tmp_path):
        cfg = make_config(interval="1", url=f"sqlite:///{tmp_path}")
        with pytest.raises(ResourceConnectionError):
            ProcessLifecycle(cfg).run()
