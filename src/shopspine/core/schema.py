"""
Table definitions for the scheduling engine.

Tables are declared once with SQLAlchemy 2.0 declarative mappings and
turned into DDL for the target dialect by :func:`create_schema`. Runtime
queries do not go through the ORM: the stores issue raw SQL over the
``Connection`` protocol, so the mapped classes exist to own the schema
(columns, defaults, indexes, the ledger's uniqueness constraint) in one
place for both SQLite and PostgreSQL.

Architecture:
    ::

        ShopSpineBase (DeclarativeBase)
        ├── JobScheduleTable           job_schedules
        ├── JobLockTable               job_locks
        ├── FailedWorkItemTable        failed_work_items
        └── NotificationDeliveryTable  notification_deliveries
                                       UNIQUE (notification_id, channel)

        create_schema(conn, dialect)
            CreateTable / CreateIndex ──compile(sqlalchemy dialect)──► conn.execute

Timestamps are TEXT columns holding fixed-width UTC ISO-8601 strings
(see :mod:`shopspine.core.timestamps`). JSON payloads are TEXT as well.

Tags:
    shopspine, orm, sqlalchemy, tables, ddl

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, Text, UniqueConstraint
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.schema import CreateIndex, CreateTable

from shopspine.core.dialect import Dialect, SQLiteDialect
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection

logger = get_logger(__name__)


class ShopSpineBase(DeclarativeBase):
    """Shared declarative base.

    * ``str``  → ``Text``
    * ``int``  → ``Integer``
    * ``bool`` → ``Integer`` (0/1 on every backend)
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Integer,
    }


class JobScheduleTable(ShopSpineBase):
    __tablename__ = "job_schedules"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    job_type: Mapped[str] = mapped_column(Text, nullable=False)
    shop_id: Mapped[int | None] = mapped_column(Integer)
    options: Mapped[str | None] = mapped_column(Text)
    frequency: Mapped[str] = mapped_column(Text, nullable=False, server_default="custom")
    cron_expression: Mapped[str | None] = mapped_column(Text)
    timezone: Mapped[str] = mapped_column(Text, nullable=False, server_default="UTC")
    enabled: Mapped[bool] = mapped_column(Integer, nullable=False, server_default="1")
    # run-state, written only through the tracker
    last_run_at: Mapped[str | None] = mapped_column(Text)
    last_run_ended_at: Mapped[str | None] = mapped_column(Text)
    last_run_status: Mapped[str | None] = mapped_column(Text)
    last_run_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_job_schedules_type_enabled", "job_type", "enabled"),)


class JobLockTable(ShopSpineBase):
    __tablename__ = "job_locks"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    holder: Mapped[str] = mapped_column(Text, nullable=False)
    acquired_at: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str] = mapped_column(Text, nullable=False)


class FailedWorkItemTable(ShopSpineBase):
    __tablename__ = "failed_work_items"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    webhook_job_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    shop_id: Mapped[int | None] = mapped_column(Integer)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="pending")
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, server_default="3")
    error_message: Mapped[str | None] = mapped_column(Text)
    context: Mapped[str | None] = mapped_column(Text)
    first_failed_at: Mapped[str] = mapped_column(Text, nullable=False)
    last_failed_at: Mapped[str] = mapped_column(Text, nullable=False)
    resolved_at: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("ix_failed_work_items_status_failed", "status", "last_failed_at"),
    )


class NotificationDeliveryTable(ShopSpineBase):
    __tablename__ = "notification_deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    notification_id: Mapped[str] = mapped_column(Text, nullable=False)
    event_id: Mapped[str | None] = mapped_column(Text)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str | None] = mapped_column(Text)
    delivered_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("notification_id", "channel", name="uq_notification_channel"),
    )


_SA_DIALECTS = {
    "sqlite": sqlite.dialect,
    "postgresql": postgresql.dialect,
}


def schema_ddl(dialect: Dialect | None = None) -> list[str]:
    """Render the CREATE statements for ``dialect`` (idempotent IF NOT EXISTS)."""
    dialect = dialect or SQLiteDialect()
    sa_dialect = _SA_DIALECTS[dialect.name]()
    statements: list[str] = []
    for table in ShopSpineBase.metadata.sorted_tables:
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=sa_dialect)).strip())
        for index in sorted(table.indexes, key=lambda ix: ix.name or ""):
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=sa_dialect)).strip())
    return statements


def create_schema(conn: Connection, dialect: Dialect | None = None) -> None:
    """
    Create every engine table.

    Safe to call multiple times (CREATE ... IF NOT EXISTS).
    """
    statements = schema_ddl(dialect)
    for ddl in statements:
        conn.execute(ddl)
    conn.commit()
    logger.debug("schema_created", tables=len(ShopSpineBase.metadata.sorted_tables))


__all__ = [
    "ShopSpineBase",
    "JobScheduleTable",
    "JobLockTable",
    "FailedWorkItemTable",
    "NotificationDeliveryTable",
    "schema_ddl",
    "create_schema",
]
