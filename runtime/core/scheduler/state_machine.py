"""Scheduler lifecycle state machine.

Canonical lifecycle:
created -> running -> shutting_down -> stopped

Notes:
- A scheduler that was never started may be shut down directly (created -> stopped).
- stopped is terminal; a scheduler is never restarted.
"""

from __future__ import annotations

from enum import Enum

from errors import LifecycleError


class SchedulerState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


# Allowed transitions excluding no-op transitions.
_ALLOWED: dict[SchedulerState, set[SchedulerState]] = {
    SchedulerState.CREATED: {SchedulerState.RUNNING, SchedulerState.STOPPED},
    SchedulerState.RUNNING: {SchedulerState.SHUTTING_DOWN},
    SchedulerState.SHUTTING_DOWN: {SchedulerState.STOPPED},
    SchedulerState.STOPPED: set(),
}

_ACCEPTS_REGISTRATIONS = {SchedulerState.CREATED, SchedulerState.RUNNING}


def is_terminal(state: SchedulerState) -> bool:
    return state is SchedulerState.STOPPED


def accepts_registrations(state: SchedulerState) -> bool:
    return state in _ACCEPTS_REGISTRATIONS


def apply_transition(current: SchedulerState, new_state: SchedulerState) -> SchedulerState:
    """Return the new state, or raise LifecycleError if the transition is not allowed."""
    if new_state not in _ALLOWED[current]:
        raise LifecycleError(current.value, new_state.value)
    return new_state
