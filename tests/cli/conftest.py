"""CLI fixtures: a file-backed store per test and quiet structured logs."""

from __future__ import annotations

import pytest

from shopspine.core.connection import open_connection
from shopspine.core.logging import configure_logging
from shopspine.core.schema import create_schema
from shopspine.scheduling.repository import ScheduleRepository


@pytest.fixture(autouse=True)
def _quiet_logs():
    configure_logging(level="WARNING", json_format=True)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "shop.db")


@pytest.fixture
def cli_conn(db_path):
    conn = open_connection(db_path)
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def cli_repository(cli_conn) -> ScheduleRepository:
    return ScheduleRepository(cli_conn)
