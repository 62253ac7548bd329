"""
CLI: ``shopspine schedule`` - schedule CRUD and the one-shot tick.
"""

from __future__ import annotations

import json
from typing import Any

import typer

from shopspine.cli.utils import (
    console,
    fail,
    get_connection,
    load_plugins,
    output_item,
    output_items,
    setup_logging,
)
from shopspine.core.errors import OptionsValidationError, ShopSpineError

app = typer.Typer(no_args_is_help=True)

_LIST_COLUMNS = [
    "id",
    "name",
    "job_type",
    "cron_expression",
    "timezone",
    "enabled",
    "last_run_status",
    "last_run_at",
]


def _parse_options(pairs: list[str] | None) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            fail(f"Option must look like key=value, got {pair!r}")
        try:
            options[key] = json.loads(raw)
        except json.JSONDecodeError:
            options[key] = raw
    return options


@app.command("tick")
def tick(
    job: str | None = typer.Option(None, "--job", "-j", help="Only evaluate schedules of this job type"),
    inline: bool = typer.Option(
        False, "--inline/--no-inline", help="Run jobs in this process before returning"
    ),
    plugins: list[str] | None = typer.Option(None, "--plugin", "-p", help="Module registering job handlers"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run one scheduler sweep and report how many schedules were dispatched."""
    from shopspine.scheduling.engine import build_engine

    setup_logging()
    load_plugins(plugins)
    conn = get_connection(database)
    engine = build_engine(conn, inline=inline)
    try:
        result = engine.service.tick(job_type=job)
    finally:
        engine.close()
    typer.echo(f"Dispatched {result.dispatched} schedule(s).")


@app.command("run-now")
def run_now(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    plugins: list[str] | None = typer.Option(None, "--plugin", "-p"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Queue one schedule immediately, ignoring its cron expression."""
    from shopspine.scheduling.engine import build_engine

    setup_logging()
    load_plugins(plugins)
    conn = get_connection(database)
    engine = build_engine(conn, inline=True)
    try:
        result = engine.service.trigger(schedule_id)
    except ShopSpineError as exc:
        fail(exc)
    finally:
        engine.close()
    typer.echo(f"Dispatched {result.dispatched} schedule(s).")


@app.command("list")
def list_schedules(
    job: str | None = typer.Option(None, "--job", "-j"),
    enabled_only: bool = typer.Option(False, "--enabled-only"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List job schedules."""
    from shopspine.scheduling.repository import ScheduleRepository

    repo = ScheduleRepository(get_connection(database))
    schedules = repo.list_enabled(job) if enabled_only else repo.list_all()
    if job and not enabled_only:
        schedules = [s for s in schedules if s.job_type == job]
    output_items(schedules, as_json=json_out, title="Schedules", columns=_LIST_COLUMNS)


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule details, including its next due time."""
    from shopspine.core.timestamps import utcnow
    from shopspine.scheduling.evaluator import next_due
    from shopspine.scheduling.repository import ScheduleRepository

    repo = ScheduleRepository(get_connection(database))
    schedule = repo.get(schedule_id)
    if schedule is None:
        fail(f"Schedule not found: {schedule_id}")
    data = schedule.to_dict()
    upcoming = next_due(schedule, utcnow())
    data["next_due_at"] = upcoming.isoformat() if upcoming else None
    output_item(data, as_json=json_out, title=f"Schedule: {schedule.name}")


@app.command("create")
def create_schedule(
    job_type: str = typer.Argument(..., help="Job type from the catalog"),
    name: str | None = typer.Option(None, "--name", help="Display name (defaults to the catalog label)"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression"),
    timezone: str | None = typer.Option(None, "--timezone", "--tz"),
    frequency: str | None = typer.Option(None, "--frequency", help="every_minute, hourly, daily, ..."),
    shop_id: int | None = typer.Option(None, "--shop", help="Target shop id"),
    option: list[str] | None = typer.Option(None, "--option", "-o", help="key=value job option"),
    enabled: bool = typer.Option(True, "--enabled/--disabled"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a schedule with catalog defaults filled in."""
    from shopspine.scheduling.catalog import get_catalog
    from shopspine.scheduling.models import Frequency
    from shopspine.scheduling.repository import ScheduleRepository

    catalog = get_catalog()
    options = _parse_options(option)
    try:
        freq = Frequency(frequency) if frequency else None
    except ValueError:
        fail(f"Unknown frequency: {frequency}")

    try:
        spec = catalog.new_schedule(
            job_type,
            name=name,
            cron_expression=cron,
            timezone=timezone,
            frequency=freq,
            shop_id=shop_id,
            options=options,
            enabled=enabled,
        )
        schedule = ScheduleRepository(get_connection(database)).create(spec)
    except OptionsValidationError as exc:
        for key, message in exc.errors.items():
            console.print(f"[red]{key}: {message}[/red]")
        fail("Invalid job options")
    except ShopSpineError as exc:
        fail(exc)
    output_item(schedule, as_json=json_out, title="Schedule Created")


def _set_enabled(schedule_id: str, enabled: bool, database: str | None) -> None:
    from shopspine.scheduling.repository import ScheduleRepository

    try:
        schedule = ScheduleRepository(get_connection(database)).set_enabled(schedule_id, enabled)
    except ShopSpineError as exc:
        fail(exc)
    state = "enabled" if schedule.enabled else "disabled"
    console.print(f"Schedule [bold]{schedule.name}[/bold] {state}.")


@app.command("enable")
def enable_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Enable a schedule."""
    _set_enabled(schedule_id, True, database)


@app.command("disable")
def disable_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Disable a schedule without deleting it."""
    _set_enabled(schedule_id, False, database)


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a schedule. Deleting an unknown id is not an error."""
    from shopspine.scheduling.repository import ScheduleRepository

    deleted = ScheduleRepository(get_connection(database)).delete(schedule_id)
    if deleted:
        console.print(f"Deleted schedule {schedule_id}.")
    else:
        console.print(f"[dim]Schedule {schedule_id} did not exist.[/dim]")


@app.command("catalog")
def show_catalog(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the job types a schedule can be created for."""
    from shopspine.scheduling.catalog import get_catalog

    output_items(
        get_catalog().catalog(),
        as_json=json_out,
        title="Job Catalog",
        columns=["job_type", "label", "default_frequency", "default_cron", "supports_shop"],
    )
