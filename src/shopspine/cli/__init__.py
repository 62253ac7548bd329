"""
CLI layer for shopspine.

Typer sub-commands over the scheduling engine; this package handles only
argument parsing and terminal output.

Entry point::

    shopspine --help
"""

from shopspine.cli.app import app

__all__ = ["app"]
