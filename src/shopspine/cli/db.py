"""
CLI: ``shopspine db`` - database management commands.
"""

from __future__ import annotations

import typer

from shopspine.cli.utils import console

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the DDL without executing it"),
) -> None:
    """Initialise database schema (create tables)."""
    from shopspine.core.connection import open_connection
    from shopspine.core.schema import create_schema, schema_ddl
    from shopspine.core.settings import get_settings

    if dry_run:
        for statement in schema_ddl():
            typer.echo(f"{statement};")
        return

    path = database or get_settings().database_path
    conn = open_connection(path)
    create_schema(conn)
    console.print(f"[green]Schema ready[/green] in {path}")
