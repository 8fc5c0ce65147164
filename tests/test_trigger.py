"""Tests for Schedule fire-time computation and scheduler state transitions."""

from itertools import islice

import pytest

from errors import ConfigurationError, LifecycleError
from scheduler.interval import Interval
from scheduler.state_machine import SchedulerState, accepts_registrations, apply_transition, is_terminal
from scheduler.trigger import Schedule


class TestSchedule:
    def test_every_builds_unbounded_schedule(self):
        s = Schedule.every(Interval(2))
        assert s.period == 2.0
        assert s.start is None
        assert s.repeat is None

    def test_fire_times_are_fixed_phase(self):
        """Fire N is at start + N * period."""
        s = Schedule(period=2.0, start=100.0)
        assert list(islice(s.fire_times(), 4)) == [100.0, 102.0, 104.0, 106.0]
        assert s.fire_time(50) == 200.0

    def test_repeat_bounds_fire_times(self):
        s = Schedule(period=1.0, start=0.0, repeat=3)
        assert list(s.fire_times()) == [0.0, 1.0, 2.0]
        assert s.is_exhausted(3)
        assert not s.is_exhausted(2)

    def test_anchored_keeps_explicit_start(self):
        s = Schedule(period=1.0, start=5.0)
        assert s.anchored(99.0) is s
        assert Schedule(period=1.0).anchored(99.0).start == 99.0

    def test_unanchored_has_no_fire_time(self):
        with pytest.raises(ValueError):
            Schedule(period=1.0).fire_time(0)

    @pytest.mark.parametrize("period", [0, -1.0])
    def test_rejects_non_positive_period(self, period):
        with pytest.raises(ConfigurationError):
            Schedule(period=period)

    def test_rejects_zero_repeat(self):
        with pytest.raises(ConfigurationError):
            Schedule(period=1.0, repeat=0)


class TestStateMachine:
    def test_canonical_lifecycle(self):
        state = SchedulerState.CREATED
        for nxt in (SchedulerState.RUNNING, SchedulerState.SHUTTING_DOWN, SchedulerState.STOPPED):
            state = apply_transition(state, nxt)
        assert is_terminal(state)

    def test_created_may_stop_directly(self):
        assert apply_transition(SchedulerState.CREATED, SchedulerState.STOPPED) is SchedulerState.STOPPED

    @pytest.mark.parametrize(
        "current,new_state",
        [
            (SchedulerState.RUNNING, SchedulerState.RUNNING),
            (SchedulerState.STOPPED, SchedulerState.RUNNING),
            (SchedulerState.SHUTTING_DOWN, SchedulerState.RUNNING),
            (SchedulerState.CREATED, SchedulerState.SHUTTING_DOWN),
        ],
    )
    def test_invalid_transitions(self, current, new_state):
        with pytest.raises(LifecycleError) as exc:
            apply_transition(current, new_state)
        assert exc.value.current == current.value
        assert exc.value.requested == new_state.value

    def test_registrations_only_before_shutdown(self):
        assert accepts_registrations(SchedulerState.CREATED)
        assert accepts_registrations(SchedulerState.RUNNING)
        assert not accepts_registrations(SchedulerState.SHUTTING_DOWN)
        assert not accepts_registrations(SchedulerState.STOPPED)
