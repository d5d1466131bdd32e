# fscrawl/cli/cli.py
"""
fscrawl command line.

    fscrawl run CONFIG [--loop N] [--restart]   crawl until stopped (or N runs)
    fscrawl status CONFIG                       show run state of every job
    fscrawl restart CONFIG JOB                  forget a job's run state
    fscrawl validate CONFIG                     check settings and plugins
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import typer

from fscrawl.cli.ui import ui
from fscrawl.config.loader import load_settings
from fscrawl.config.schema import CrawlerSettings
from fscrawl.crawl.service import CrawlerService
from fscrawl.exceptions import FscrawlError
from fscrawl.logging.logger import configure_logging, get_logger
from fscrawl.logging.tags import CLI
from fscrawl.registry import FILTERS, OUTPUTS, SOURCES, load_builtin_plugins, parse_settings
from fscrawl.state.store import RunStateStore

logger = get_logger(__name__)

app = typer.Typer(
    help="fscrawl - incremental file crawler for search indexes",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _load(config: Path) -> CrawlerSettings:
    try:
        return load_settings(config)
    except FscrawlError as exc:
        ui.error(str(exc))
        raise typer.Exit(code=1)


def _fmt(value: object) -> str:
    return "-" if value is None else str(value)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@app.command("run")
def run(
    config: Path = typer.Argument(..., help="Path to the YAML settings file"),
    loop: int = typer.Option(0, "--loop", "-l", help="Number of runs, 0 = until stopped"),
    restart: bool = typer.Option(False, "--restart", help="Discard run state first"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Crawl every configured job."""
    configure_logging(log_level)
    settings = _load(config)

    try:
        service = CrawlerService.from_settings(settings, loop=loop, restart=restart)
        service.start()
    except FscrawlError as exc:
        ui.error(str(exc))
        raise typer.Exit(code=1)

    ui.header("fscrawl", f"{len(settings.jobs)} job(s), Ctrl+C to stop")
    try:
        while not service.wait(timeout=1.0):
            time.sleep(0.1)
    except KeyboardInterrupt:
        logger.info(f"{CLI} Interrupted, shutting down")
    finally:
        service.close()

    errors = service.errors()
    if errors:
        for error in errors:
            ui.error(str(error))
        raise typer.Exit(code=1)
    ui.success("Done")


# ---------------------------------------------------------------------------
# status / restart
# ---------------------------------------------------------------------------


@app.command("status")
def status(config: Path = typer.Argument(..., help="Path to the YAML settings file")) -> None:
    """Show the stored run state of every job."""
    settings = _load(config)
    store = RunStateStore(settings.config_dir)

    rows = []
    for job in settings.jobs:
        state = store.read(job.name)
        if state is None:
            rows.append([job.name, "never", "-", "0", "0"])
            continue
        rows.append(
            [
                job.name,
                _fmt(state.lastrun),
                _fmt(state.next_check),
                str(state.indexed),
                str(state.deleted),
            ]
        )
    ui.table("Jobs", ["Job", "Last run", "Next check", "Indexed", "Deleted"], rows)


@app.command("restart")
def restart(
    config: Path = typer.Argument(..., help="Path to the YAML settings file"),
    job: str = typer.Argument(..., help="Job name"),
) -> None:
    """Forget the run state of a job so the next run reindexes everything."""
    settings = _load(config)
    try:
        settings.get_job(job)
    except KeyError:
        ui.error(f"Unknown job: {job!r}")
        raise typer.Exit(code=1)

    if RunStateStore(settings.config_dir).clean(job):
        ui.success(f"Run state of '{job}' removed")
    else:
        ui.warning(f"No run state for '{job}'")


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@app.command("validate")
def validate(config: Path = typer.Argument(..., help="Path to the YAML settings file")) -> None:
    """Check settings and every plugin's settings without connecting anywhere."""
    settings = _load(config)
    load_builtin_plugins()

    try:
        for job in settings.jobs:
            parse_settings(
                SOURCES.get(job.source.plugin_name), job.source.kwargs, label=f"source of '{job.name}'"
            )
        for cfg in settings.filters:
            parse_settings(FILTERS.get(cfg.plugin_name), cfg.kwargs, label=f"filter '{cfg.instance_id}'")
        for cfg in settings.outputs:
            parse_settings(OUTPUTS.get(cfg.plugin_name), cfg.kwargs, label=f"output '{cfg.instance_id}'")
    except FscrawlError as exc:
        ui.error(str(exc))
        raise typer.Exit(code=1)

    ui.success(
        f"{config}: {len(settings.jobs)} job(s), {len(settings.filters)} filter(s), "
        f"{len(settings.outputs)} output(s)"
    )


def main() -> None:
    app()


__all__ = ["app", "main"]
