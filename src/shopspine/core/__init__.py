"""
Core primitives shared by every shopspine package.

Tags:
    core, errors, logging, settings, persistence, shopspine

Doc-Types:
    - Package Overview
"""

from .connection import SqliteConnection, open_connection
from .dialect import Dialect, PostgreSQLDialect, SQLiteDialect, get_dialect
from .errors import (
    ConfigError,
    DeliveryError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    InvalidCronError,
    InvalidTransitionError,
    LockError,
    OptionsValidationError,
    ScheduleNotFoundError,
    SchedulingError,
    ShopSpineError,
    StoreError,
    UnknownJobTypeError,
)
from .logging import LogContext, bind_context, clear_context, configure_logging, get_logger
from .protocols import Connection, LockProvider, NotificationChannel, WorkQueue
from .schema import create_schema
from .settings import SchedulerSettings, get_settings, reset_settings

__all__ = [
    # Persistence
    "Connection",
    "SqliteConnection",
    "open_connection",
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "create_schema",
    # Boundaries
    "WorkQueue",
    "LockProvider",
    "NotificationChannel",
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "ShopSpineError",
    "ConfigError",
    "InvalidConfigError",
    "InvalidCronError",
    "UnknownJobTypeError",
    "OptionsValidationError",
    "SchedulingError",
    "ScheduleNotFoundError",
    "InvalidTransitionError",
    "StoreError",
    "LockError",
    "DeliveryError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "LogContext",
    # Settings
    "SchedulerSettings",
    "get_settings",
    "reset_settings",
]
