"""Command-line interface for the activity monitor."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer

from .config import MonitorSettings, WindowKeying
from .paths import get_log_path
from .server_runner import run_server

app = typer.Typer(help="Correlated timeline of application, window and screen activity.")

SOURCE_NAMES = ("processes", "activation", "windows", "screen")


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write logs to the per-user log directory."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        logging.getLogger().addHandler(handler)


def _build_settings(
    poll_seconds: float,
    max_records: Optional[int],
    window_keying: WindowKeying,
    track_activation: bool,
    track_existing: bool,
    sources: Optional[list[str]],
) -> MonitorSettings:
    selected = set(sources) if sources else set(SOURCE_NAMES)
    unknown = selected - set(SOURCE_NAMES)
    if unknown:
        raise typer.BadParameter(
            f"unknown source(s): {', '.join(sorted(unknown))}", param_hint="--source"
        )
    return MonitorSettings.from_options(
        poll_seconds=poll_seconds,
        max_records=max_records,
        window_keying=window_keying,
        track_activation_duration=track_activation,
        track_existing=track_existing,
        sources=selected,
    )


@app.command()
def monitor(
    poll_seconds: float = typer.Option(
        2.0, "--interval", min=0.1, help="Polling interval for event sources in seconds."
    ),
    duration: Optional[float] = typer.Option(
        None, "--duration", min=1.0, help="Stop after this many seconds (default: until Ctrl+C)."
    ),
    max_records: Optional[int] = typer.Option(
        None, "--max-records", min=1, help="Keep at most this many records in memory."
    ),
    window_keying: WindowKeying = typer.Option(
        WindowKeying.PER_WINDOW, "--window-keying", help="How window events are paired."
    ),
    track_activation: bool = typer.Option(
        False,
        "--track-activation/--no-track-activation",
        help="Measure how long each application stays in the foreground.",
    ),
    track_existing: bool = typer.Option(
        True,
        "--track-existing/--no-track-existing",
        help="Open intervals for applications already running at startup.",
    ),
    sources: Optional[list[str]] = typer.Option(
        None, "--source", help="Event source to enable; repeat for several (default: all)."
    ),
) -> None:
    """Print activity records as they are correlated, then a summary."""
    from .engine import ActivityEngine
    from .reporting import TimelinePrinter

    settings = _build_settings(
        poll_seconds, max_records, window_keying, track_activation, track_existing, sources
    )
    engine = ActivityEngine.with_default_sources(settings)
    printer = TimelinePrinter()
    engine.activity_log.subscribe(printer.print_record)

    deadline = time.monotonic() + duration if duration else None
    engine.start()
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Monitor interrupted; shutting down.")
    finally:
        engine.stop()
    print()
    printer.print_summary(engine.aggregator)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(8766, "--port", min=1, max=65535, help="TCP port for the API."),
    poll_seconds: float = typer.Option(
        2.0, "--interval", min=0.1, help="Polling interval for event sources in seconds."
    ),
    max_records: Optional[int] = typer.Option(
        None, "--max-records", min=1, help="Keep at most this many records in memory."
    ),
    window_keying: WindowKeying = typer.Option(
        WindowKeying.PER_WINDOW, "--window-keying", help="How window events are paired."
    ),
    track_activation: bool = typer.Option(
        False,
        "--track-activation/--no-track-activation",
        help="Measure how long each application stays in the foreground.",
    ),
    sources: Optional[list[str]] = typer.Option(
        None, "--source", help="Event source to enable; repeat for several (default: all)."
    ),
) -> None:
    """Serve the activity timeline API with the engine running in the background."""
    settings = _build_settings(
        poll_seconds, max_records, window_keying, track_activation, True, sources
    )
    run_server(host=host, port=port, settings=settings)


if __name__ == "__main__":
    app()
