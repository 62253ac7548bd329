"""
Root Typer application for the shopspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="shopspine",
    help="shopspine - recurring job scheduling and dispatch.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from shopspine import __version__

        typer.echo(f"shopspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """shopspine CLI - manage schedules, run sweeps, inspect locks."""


# ── Sub-command registration ─────────────────────────────────────────────

from shopspine.cli.db import app as db_app  # noqa: E402
from shopspine.cli.locks import app as locks_app  # noqa: E402
from shopspine.cli.retry import app as retry_app  # noqa: E402
from shopspine.cli.schedule import app as schedule_app  # noqa: E402
from shopspine.cli.scheduler import app as scheduler_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(schedule_app, name="schedule", help="Schedule management and one-shot ticks.")
app.add_typer(scheduler_app, name="scheduler", help="Long-running scheduler clock.")
app.add_typer(retry_app, name="retry", help="Failed work items and the retry sweep.")
app.add_typer(locks_app, name="locks", help="Job-family locks.")
