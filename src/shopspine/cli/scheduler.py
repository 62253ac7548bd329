"""
CLI: ``shopspine scheduler`` - run the sweep clock in the foreground.
"""

from __future__ import annotations

import time

import typer

from shopspine.cli.utils import console, get_connection, load_plugins, output_item, setup_logging

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    plugins: list[str] | None = typer.Option(None, "--plugin", "-p", help="Module registering job handlers"),
    with_retry: bool = typer.Option(True, "--with-retry/--no-retry", help="Also run the retry sweep clock"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Start the sweep clock (and the retry sweep clock) until interrupted.

    Example::

        shopspine scheduler start --plugin myshop.jobs
    """
    from shopspine.core.settings import get_settings
    from shopspine.retry.repository import FailedWorkRepository
    from shopspine.retry.sweep import RetrySweep, get_retry_handler
    from shopspine.scheduling.engine import build_engine
    from shopspine.scheduling.thread_backend import ThreadSchedulerBackend

    settings = get_settings()
    setup_logging(settings)
    load_plugins(plugins)
    conn = get_connection(database)
    engine = build_engine(conn, settings)

    retry_backend: ThreadSchedulerBackend | None = None
    retry_handler = get_retry_handler()
    if with_retry and retry_handler is not None:
        sweep = RetrySweep.from_settings(
            FailedWorkRepository(conn, max_retries=settings.retry_max_retries),
            engine.guard,
            retry_handler,
            settings,
        )
        retry_backend = ThreadSchedulerBackend(name="retry")
        retry_backend.start(sweep.run, settings.retry_interval_seconds, align=False)

    console.print(
        f"[bold green]Starting shopspine scheduler[/bold green] "
        f"(tick={settings.tick_interval_seconds}s, handlers={len(engine.registry)}, "
        f"retry={'on' if retry_backend else 'off'})"
    )
    engine.service.start()
    try:
        while engine.service.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped by user[/yellow]")
    finally:
        if retry_backend is not None:
            retry_backend.stop()
        engine.close()


@app.command("health")
def health(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show enabled schedule count and held locks."""
    from shopspine.scheduling.engine import build_engine

    engine = build_engine(get_connection(database), inline=True)
    output_item(engine.service.health(), as_json=json_out, title="Scheduler Health")
