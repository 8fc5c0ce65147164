"""
CLI for ``alert-rabbit``: run the rabbit scheduler for a bounded window.
"""

from __future__ import annotations

import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import typer

from config.logging import apply_logging_config
from config.settings import default_config_paths, load_config
from errors import ConfigurationError, ResourceConnectionError
from lifecycle.process import ProcessLifecycle
from scheduler.interval import validate_interval
from storage.sqlite import open_database
from utils import json_dumps

logger = logging.getLogger(__name__)

EXIT_CONFIGURATION_ERROR = 2
EXIT_CONNECTION_ERROR = 3

app = typer.Typer(name="alert-rabbit", help="Interval scheduler that records every tick in a database.", no_args_is_help=True)


@contextmanager
def _stop_on_signals(lifecycle: ProcessLifecycle) -> Iterator[None]:
    def _handler(signum: int, _frame: Any) -> None:
        logger.info("signal_received", extra={"event": "signal_received", "code": signum})
        lifecycle.request_stop()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.command("run")
def run(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to rabbit.yaml or rabbit.properties"),
    logging_config: Path | None = typer.Option(None, "--logging-config", help="Path to logging.yaml"),
    run_window: float | None = typer.Option(None, "--run-window", help="Seconds to run before shutting down"),
    interval: str | None = typer.Option(None, "--interval", help="Override the configured interval (seconds)"),
) -> None:
    """Start the scheduler, record a row every interval, and stop after the run window.

    Example::

        alert-rabbit run --config config/rabbit.yaml --run-window 5 --interval 2
    """
    default_config, default_logging = default_config_paths()
    apply_logging_config(logging_config or default_logging)

    try:
        cfg = load_config(config or default_config).with_overrides(interval=interval, run_window_seconds=run_window)
        lifecycle = ProcessLifecycle(cfg)
        with _stop_on_signals(lifecycle):
            code = lifecycle.run()
    except ConfigurationError as exc:
        logger.error("configuration_error", extra={"event": "configuration_error", "reason": exc.reason})
        typer.echo(f"Configuration error ({exc.reason}): {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
    except ResourceConnectionError as exc:
        logger.error("connection_error", extra={"event": "connection_error"})
        typer.echo(f"Connection error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)
    raise typer.Exit(code=code)


@app.command("validate-interval")
def validate_interval_cmd(raw: str = typer.Argument(..., help="Raw interval value")) -> None:
    """Check an interval value the way the scheduler will."""
    try:
        value = validate_interval(raw)
    except ConfigurationError as exc:
        typer.echo(f"{exc.reason}: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
    typer.echo(str(value))


@app.command("ticks")
def ticks(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to rabbit.yaml or rabbit.properties"),
) -> None:
    """Print the recorded ticks as JSON lines."""
    default_config, _ = default_config_paths()
    try:
        cfg = load_config(config or default_config)
        with open_database(cfg.storage) as db:
            for record in db.fetch_ticks():
                typer.echo(json_dumps(record.to_dict()))
    except ConfigurationError as exc:
        typer.echo(f"Configuration error ({exc.reason}): {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
    except ResourceConnectionError as exc:
        typer.echo(f"Connection error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
