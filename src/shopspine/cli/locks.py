"""
CLI: ``shopspine locks`` - inspect and release job-family locks.
"""

from __future__ import annotations

import typer

from shopspine.cli.utils import console, fail, get_connection, output_items

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_locks(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List unexpired locks."""
    from shopspine.scheduling.locks import LockManager

    output_items(LockManager(get_connection(database)).list_active(), as_json=json_out, title="Locks")


@app.command("release")
def release(
    name: str = typer.Argument(..., help="Lock name, e.g. job-lock:orders.fetch_new"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Force-release a lock regardless of holder."""
    from shopspine.scheduling.locks import LockManager

    if not LockManager(get_connection(database)).force_release(name):
        fail(f"Lock not held: {name}")
    console.print(f"Released {name}.")
