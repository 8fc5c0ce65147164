"""Logging helpers.

The runtime uses Python logging with a JSON formatter so every scheduler and
tick event is one machine-readable line. The handler layout comes from
config/logging.yaml via logging.config.dictConfig.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from errors import ConfigurationError

_EXTRA_KEYS = ("event", "job_id", "task", "tick", "scheduled_for", "state", "interval_seconds", "run_window_seconds", "code", "reason")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Common structured extras (when provided).
        for k in _EXTRA_KEYS:
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, sort_keys=True, default=str)


def load_logging_config(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read logging config {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid logging config YAML root object: {path}")
    return raw


def apply_logging_config(path: Path | None) -> None:
    """Apply a dictConfig YAML file; without one, log JSON lines to stderr at INFO unless logging is already set up."""
    if path is not None and path.exists():
        logging.config.dictConfig(load_logging_config(path))
        return
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(logging.INFO)
