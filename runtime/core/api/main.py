"""FastAPI control surface for the alert rabbit runtime.

The app owns one ProcessLifecycle running on a background thread. The
lifecycle's run window comes from config; POST /stop ends it early, which is
the operator-facing way to shut the scheduler down gracefully.

Run with: uvicorn api.main:app  (working directory runtime/core)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config.logging import apply_logging_config
from config.settings import RuntimeConfig, default_config_paths, load_config
from errors import (
    AlertRabbitError,
    ConfigSchemaError,
    ConfigurationError,
    LifecycleError,
    ResourceConnectionError,
)
from lifecycle.process import ProcessLifecycle, ResourceFactory
from scheduler.interval import validate_interval
from storage.sqlite import open_database

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[], RuntimeConfig]


@dataclass
class AppComponents:
    lifecycle: ProcessLifecycle
    thread: threading.Thread
    errors: list[BaseException] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "failed"
        if self.lifecycle.running:
            return "ok"
        return "stopped" if not self.thread.is_alive() else "starting"


def _error_payload(err: Exception) -> dict[str, Any]:
    if isinstance(err, ConfigSchemaError):
        return {
            "error": "CONFIG_SCHEMA_ERROR",
            "source": err.source,
            "violations": [{"path": v.path, "message": v.message} for v in err.violations],
        }
    if isinstance(err, ConfigurationError):
        return {"error": "CONFIGURATION_ERROR", "reason": err.reason, "message": str(err)}
    if isinstance(err, ResourceConnectionError):
        return {"error": "RESOURCE_UNAVAILABLE", "message": str(err)}
    if isinstance(err, LifecycleError):
        return {"error": "LIFECYCLE_CONFLICT", "current": err.current, "requested": err.requested, "message": str(err)}
    return {"error": "INTERNAL", "message": str(err)}


def _load_default_config() -> RuntimeConfig:
    config_path, logging_path = default_config_paths()
    apply_logging_config(logging_path)
    return load_config(config_path)


def _start_components(config: RuntimeConfig, resource_factory: ResourceFactory) -> AppComponents:
    # Fail closed at startup on a bad interval rather than inside the worker thread.
    validate_interval(config.rabbit.interval_seconds)
    lifecycle = ProcessLifecycle(config, resource_factory=resource_factory)
    errors: list[BaseException] = []

    def _run() -> None:
        try:
            lifecycle.run()
        except AlertRabbitError as e:
            errors.append(e)
            logger.exception("lifecycle_failed", extra={"event": "lifecycle_failed"})

    thread = threading.Thread(target=_run, name="alert-rabbit-lifecycle", daemon=True)
    components = AppComponents(lifecycle=lifecycle, thread=thread, errors=errors)
    thread.start()
    return components


def create_app(config_loader: ConfigLoader = _load_default_config, *, resource_factory: ResourceFactory = open_database) -> FastAPI:
    app = FastAPI(title="Alert Rabbit Runtime", version="0.1.0")

    @app.on_event("startup")
    def _startup() -> None:
        app.state.components = _start_components(config_loader(), resource_factory)
        logger.info("runtime_started", extra={"event": "runtime_started"})

    @app.on_event("shutdown")
    def _shutdown() -> None:
        comps: AppComponents = app.state.components
        comps.lifecycle.request_stop()
        comps.thread.join()
        logger.info("runtime_stopped", extra={"event": "runtime_stopped"})

    @app.exception_handler(ConfigurationError)
    def _configuration_handler(_req, exc: ConfigurationError):
        return JSONResponse(status_code=400, content=_error_payload(exc))

    @app.exception_handler(ResourceConnectionError)
    def _resource_handler(_req, exc: ResourceConnectionError):
        return JSONResponse(status_code=503, content=_error_payload(exc))

    @app.exception_handler(LifecycleError)
    def _lifecycle_handler(_req, exc: LifecycleError):
        return JSONResponse(status_code=409, content=_error_payload(exc))

    @app.exception_handler(Exception)
    def _unhandled_handler(_req, exc: Exception):
        logger.exception("unhandled_error", extra={"event": "unhandled_error"})
        return JSONResponse(status_code=500, content=_error_payload(exc))

    def _components() -> AppComponents:
        return app.state.components

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Runtime status plus the scheduler's own health snapshot once it exists."""
        comps = _components()
        scheduler = comps.lifecycle.scheduler
        return {
            "status": comps.status,
            "scheduler": scheduler.health() if scheduler is not None else None,
            "errors": [str(e) for e in comps.errors],
        }

    @app.get("/jobs")
    def list_jobs() -> dict[str, Any]:
        scheduler = _components().lifecycle.scheduler
        jobs = scheduler.jobs() if scheduler is not None else []
        return {"jobs": [j.to_dict() for j in jobs]}

    @app.get("/ticks")
    def list_ticks() -> dict[str, Any]:
        resource = _components().lifecycle.resource
        if resource is None or not resource.is_open:
            raise ResourceConnectionError("Database is not open (runtime not running)")
        return {"ticks": [t.to_dict() for t in resource.fetch_ticks()]}

    @app.post("/stop")
    def stop() -> JSONResponse:
        _components().lifecycle.request_stop()
        return JSONResponse(status_code=202, content={"status": "stopping"})

    return app


app = create_app()
