"""Interval validation.

The interval arrives as raw configuration text and must be proven to be a
positive whole number of seconds before anything is scheduled.
"""

from __future__ import annotations

from typing import Any, NewType

from errors import INTERVAL_MISSING, INTERVAL_TOO_SMALL, PARSE_FAILURE, ConfigurationError

Interval = NewType("Interval", int)

MIN_INTERVAL_SECONDS = 1
MAX_INTERVAL_SECONDS = 2**31 - 1


def validate_interval(raw: Any) -> Interval:
    """Parse and validate a raw interval value, returning whole seconds >= 1."""
    if isinstance(raw, bool):
        raise ConfigurationError(f"Interval must be an integer, got {raw!r}", reason=PARSE_FAILURE)
    if raw is None:
        raise ConfigurationError("Interval is not configured", reason=INTERVAL_MISSING)

    text = str(raw)
    if not text:
        raise ConfigurationError("Interval is not configured", reason=INTERVAL_MISSING)
    if not text.strip():
        raise ConfigurationError(f"Interval must be an integer, got {text!r}", reason=PARSE_FAILURE)
    text = text.strip()

    try:
        value = int(text)
    except ValueError as e:
        raise ConfigurationError(f"Interval must be an integer, got {text!r}", reason=PARSE_FAILURE) from e

    if value < MIN_INTERVAL_SECONDS:
        raise ConfigurationError(
            f"Interval must be at least {MIN_INTERVAL_SECONDS} second(s), got {value}",
            reason=INTERVAL_TOO_SMALL,
        )
    if value > MAX_INTERVAL_SECONDS:
        raise ConfigurationError(
            f"Interval must be at most {MAX_INTERVAL_SECONDS} seconds, got {value}",
            reason=PARSE_FAILURE,
        )
    return Interval(value)
