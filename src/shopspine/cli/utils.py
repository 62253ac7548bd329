"""
CLI utility helpers: output formatting, connection management, plugins.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from shopspine.core.connection import SqliteConnection, open_connection
from shopspine.core.errors import ShopSpineError
from shopspine.core.logging import configure_logging
from shopspine.core.schema import create_schema
from shopspine.core.settings import SchedulerSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None) -> SqliteConnection:
    """Open the store (``--database`` or ``SHOPSPINE_DATABASE_PATH``) with the schema in place."""
    conn = open_connection(database or get_settings().database_path)
    create_schema(conn)
    return conn


def setup_logging(settings: SchedulerSettings | None = None) -> None:
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


def load_plugins(modules: list[str] | None) -> None:
    """Import modules that register job or retry handlers."""
    for module in modules or []:
        try:
            importlib.import_module(module)
        except ImportError as exc:
            err_console.print(f"[bold red]Error[/bold red]: cannot import plugin {module!r}: {exc}")
            raise typer.Exit(code=1) from exc


def fail(error: ShopSpineError | str) -> None:
    """Print an error and exit with status 1."""
    message = error.message if isinstance(error, ShopSpineError) else error
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_items(
    items: list[Any],
    *,
    as_json: bool = False,
    title: str = "",
    columns: list[str] | None = None,
) -> None:
    """Render a list as a Rich table (or JSON)."""
    rows = [_to_dict(item) for item in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    cols = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(_cell(row.get(col)) for col in cols))
    console.print(table)


def output_item(item: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single object as key-value pairs (or JSON)."""
    data = _to_dict(item)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}")


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, dict | list):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)
