"""Configuration loader for the alert rabbit runtime.

Rules:
- Fail closed when config is missing or invalid.
- The document is checked against config/rabbit_config.schema.yaml before use.
- Relative sqlite paths are resolved relative to the config file's directory.
- The interval is kept as raw text; it is validated when the lifecycle starts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from config.schema_validator import validate_config_document
from errors import ConfigurationError
from utils import resolve_path

DEFAULT_RUN_WINDOW_SECONDS = 10
DEFAULT_MAX_WORKERS = 4
DEFAULT_SQLITE_URL = "sqlite:///../state/alert_rabbit.sqlite"

_SQLITE_PREFIX = "sqlite:///"
_JDBC_SQLITE_PREFIX = "jdbc:sqlite:"


@dataclass(frozen=True)
class StorageConfig:
    driver: str
    connection_url: str
    username: str
    password: str
    sqlite_path: Path | str


@dataclass(frozen=True)
class RabbitConfig:
    interval_seconds: str | None  # raw; see scheduler.interval.validate_interval


@dataclass(frozen=True)
class LifecycleConfig:
    run_window_seconds: float | None  # None: run until a stop is requested


@dataclass(frozen=True)
class SchedulerConfig:
    max_workers: int


@dataclass(frozen=True)
class RuntimeConfig:
    storage: StorageConfig
    rabbit: RabbitConfig
    lifecycle: LifecycleConfig
    scheduler: SchedulerConfig
    config_dir: Path

    def with_overrides(self, *, interval: str | None = None, run_window_seconds: float | None = None) -> "RuntimeConfig":
        cfg = self
        if interval is not None:
            cfg = replace(cfg, rabbit=RabbitConfig(interval_seconds=interval))
        if run_window_seconds is not None:
            cfg = replace(cfg, lifecycle=LifecycleConfig(run_window_seconds=run_window_seconds))
        return cfg


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing required config file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid YAML root object in config file: {path}")
    return data


def _raw_text(v: Any) -> str | None:
    if v is None:
        return None
    return str(v)


def _sqlite_path(base_dir: Path, url: str) -> Path | str:
    raw = url
    for prefix in (_SQLITE_PREFIX, _JDBC_SQLITE_PREFIX):
        if raw.startswith(prefix):
            raw = raw[len(prefix):]
            break
    if raw == ":memory:":
        return raw
    if not raw:
        raise ConfigurationError(f"Invalid sqlite connection-url: {url!r}")
    return resolve_path(base_dir, raw)


def _storage_config(base_dir: Path, driver: str, url: str, username: str, password: str) -> StorageConfig:
    sqlite_path: Path | str = ""
    if driver == "sqlite":
        sqlite_path = _sqlite_path(base_dir, url)
    return StorageConfig(driver=driver, connection_url=url, username=username, password=password, sqlite_path=sqlite_path)


def build_runtime_config(raw: dict[str, Any], *, config_dir: Path, source: str = "config") -> RuntimeConfig:
    validate_config_document(raw, source=source)

    storage_raw = raw.get("storage") or {}
    rabbit_raw = raw.get("rabbit") or {}
    lifecycle_raw = raw.get("lifecycle") or {}
    scheduler_raw = raw.get("scheduler") or {}

    storage = _storage_config(
        config_dir,
        driver=str(storage_raw.get("driver", "sqlite")),
        url=str(storage_raw.get("connection-url", DEFAULT_SQLITE_URL)),
        username=str(storage_raw.get("username") or ""),
        password=str(storage_raw.get("password") or ""),
    )

    window = lifecycle_raw.get("run-window-seconds", DEFAULT_RUN_WINDOW_SECONDS)

    return RuntimeConfig(
        storage=storage,
        rabbit=RabbitConfig(interval_seconds=_raw_text(rabbit_raw.get("interval-seconds"))),
        lifecycle=LifecycleConfig(run_window_seconds=None if window is None else float(window)),
        scheduler=SchedulerConfig(max_workers=int(scheduler_raw.get("max-workers", DEFAULT_MAX_WORKERS))),
        config_dir=config_dir,
    )


def load_runtime_config(config_path: Path) -> RuntimeConfig:
    cfg_dir = config_path.parent.resolve()
    raw = _load_yaml(config_path)
    return build_runtime_config(raw, config_dir=cfg_dir, source=str(config_path))


def _parse_properties(text: str) -> dict[str, str]:
    props: dict[str, str] = {}
    for line in text.splitlines():
        s = line.strip()
        if not s or s[0] in "#!":
            continue
        for sep in ("=", ":"):
            if sep in s:
                key, value = s.split(sep, 1)
                break
        else:
            key, value = s, ""
        props[key.strip()] = value.strip()
    return props


def load_properties_config(properties_path: Path) -> RuntimeConfig:
    """Load a legacy rabbit.properties file (driver-class-name, url, username, password, rabbit.interval)."""
    if not properties_path.exists():
        raise ConfigurationError(f"Missing required config file: {properties_path}")
    props = _parse_properties(properties_path.read_text(encoding="utf-8"))
    cfg_dir = properties_path.parent.resolve()

    driver = props.get("driver-class-name", "sqlite")
    if "sqlite" in driver.lower():
        driver = "sqlite"

    return RuntimeConfig(
        storage=_storage_config(
            cfg_dir,
            driver=driver,
            url=props.get("url", DEFAULT_SQLITE_URL),
            username=props.get("username", ""),
            password=props.get("password", ""),
        ),
        rabbit=RabbitConfig(interval_seconds=props.get("rabbit.interval")),
        lifecycle=LifecycleConfig(run_window_seconds=float(DEFAULT_RUN_WINDOW_SECONDS)),
        scheduler=SchedulerConfig(max_workers=DEFAULT_MAX_WORKERS),
        config_dir=cfg_dir,
    )


def load_config(path: Path) -> RuntimeConfig:
    if path.suffix.lower() == ".properties":
        return load_properties_config(path)
    return load_runtime_config(path)


def _env_path(name: str) -> Path | None:
    v = os.environ.get(name)
    if not v:
        return None
    return Path(v)


def default_config_paths() -> tuple[Path, Path]:
    # Default to paths relative to the runtime working directory (runtime/core).
    config_path = _env_path("ALERT_RABBIT_CONFIG") or Path.cwd() / "config" / "rabbit.yaml"
    logging_path = _env_path("ALERT_RABBIT_LOGGING_CONFIG") or Path.cwd() / "config" / "logging.yaml"
    return config_path, logging_path
