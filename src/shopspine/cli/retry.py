"""
CLI: ``shopspine retry`` - failed work items and the retry sweep.
"""

from __future__ import annotations

import typer

from shopspine.cli.utils import console, fail, get_connection, load_plugins, output_items, setup_logging

app = typer.Typer(no_args_is_help=True)


@app.command("sweep")
def sweep(
    plugins: list[str] | None = typer.Option(None, "--plugin", "-p", help="Module registering the retry handler"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run one retry pass and print the counts."""
    from shopspine.core.settings import get_settings
    from shopspine.retry.repository import FailedWorkRepository
    from shopspine.retry.sweep import RetrySweep, get_retry_handler
    from shopspine.scheduling.guard import OverlapGuard
    from shopspine.scheduling.locks import LockManager

    settings = get_settings()
    setup_logging(settings)
    load_plugins(plugins)
    handler = get_retry_handler()
    if handler is None:
        fail("No retry handler registered (use --plugin).")

    conn = get_connection(database)
    retry_sweep = RetrySweep.from_settings(
        FailedWorkRepository(conn, max_retries=settings.retry_max_retries),
        OverlapGuard(LockManager(conn), settings.lock_ttl_seconds),
        handler,
        settings,
    )
    result = retry_sweep.run()
    if not result.ran:
        console.print("[yellow]Retry sweep already running, skipped.[/yellow]")
        return
    typer.echo(f"Scanned {result.scanned}, retried {result.retried}, failed {result.failed}.")


@app.command("list")
def list_items(
    status: str | None = typer.Option(None, "--status", "-s", help="pending, retrying or resolved"),
    limit: int = typer.Option(50, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List failed work items."""
    from shopspine.retry.models import FailedWorkStatus
    from shopspine.retry.repository import FailedWorkRepository

    try:
        wanted = FailedWorkStatus(status) if status else None
    except ValueError:
        fail(f"Unknown status: {status}")
    items = FailedWorkRepository(get_connection(database)).list_all(wanted, limit=limit)
    output_items(
        items,
        as_json=json_out,
        title="Failed Work",
        columns=["id", "webhook_job_id", "endpoint", "status", "retry_count", "max_retries", "last_failed_at"],
    )


@app.command("resolve")
def resolve(
    item_id: str = typer.Argument(..., help="Failed work item ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Mark a failed work item as resolved."""
    from shopspine.retry.repository import FailedWorkRepository

    if not FailedWorkRepository(get_connection(database)).mark_resolved(item_id):
        fail(f"Failed work item not found or already resolved: {item_id}")
    console.print(f"Resolved {item_id}.")
