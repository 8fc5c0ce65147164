"""Core runtime error types.

Startup errors (configuration, connection) are fatal and propagate to the
process entry point. Tick errors are contained at the tick boundary and never
unwind the dispatch loop. These exception types are mapped to exit codes in the
CLI and to HTTP responses in the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

INTERVAL_MISSING = "interval missing"
PARSE_FAILURE = "parse failure"
INTERVAL_TOO_SMALL = "interval too small"
INVALID_CONFIG = "invalid config"


class AlertRabbitError(Exception):
    """Base class for runtime errors."""


class ConfigurationError(AlertRabbitError):
    def __init__(self, message: str, reason: str = INVALID_CONFIG):
        self.reason = reason
        super().__init__(message)


@dataclass(frozen=True)
class SchemaViolation:
    path: str
    message: str


class ConfigSchemaError(ConfigurationError):
    def __init__(self, source: str, violations: Iterable[SchemaViolation]):
        self.source = source
        self.violations = list(violations)
        super().__init__(f"{source} failed schema validation ({len(self.violations)} violation(s))")


class ResourceConnectionError(AlertRabbitError):
    """The shared resource (database handle) could not be opened or is no longer usable."""


class TickExecutionError(AlertRabbitError):
    def __init__(self, job_id: str, tick: int, message: str):
        self.job_id = job_id
        self.tick = tick
        super().__init__(f"{job_id} tick {tick} failed: {message}")


class LifecycleError(AlertRabbitError):
    def __init__(self, current: str, requested: str, message: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Invalid scheduler state transition: {current} -> {requested}")
