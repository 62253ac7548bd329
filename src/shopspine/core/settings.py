"""
Centralized settings for shopspine.

One validated, cached settings object holds every tunable the engine reads:
the tick cadence, the re-arm interval that pairs with it, lock TTLs, and the
retry sweep's lookback and minimum-age bounds. All fields can be set via
``SHOPSPINE_*`` environment variables or a ``.env`` file.

The re-arm interval and the tick interval are a pair: the sweep refuses to
queue a schedule again while ``last_run_at`` is within the re-arm interval,
so the re-arm interval must not exceed the tick interval or due minutes
would be missed. The validator below enforces that.

Tags:
    shopspine, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Scheduling engine configuration (``SHOPSPINE_*`` environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="SHOPSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_path: str = Field(default="shopspine.db")

    # ── Sweep ────────────────────────────────────────────────────
    tick_interval_seconds: int = Field(default=60, gt=0)
    rearm_interval_seconds: int = Field(
        default=60,
        gt=0,
        description="Minimum gap between two queued markers of one schedule",
    )
    default_timezone: str = Field(default="Europe/Prague")

    # ── Overlap guard ────────────────────────────────────────────
    lock_ttl_seconds: int = Field(default=3600, gt=0)

    # ── Worker ───────────────────────────────────────────────────
    worker_max_workers: int = Field(default=4, gt=0)

    # ── Retry sweep ──────────────────────────────────────────────
    retry_lookback_hours: int = Field(default=24, gt=0)
    retry_min_age_seconds: int = Field(default=300, ge=0)
    retry_lock_ttl_seconds: int = Field(default=600, gt=0)
    retry_max_retries: int = Field(default=3, ge=1)
    retry_interval_seconds: int = Field(default=3600, gt=0)

    # ── Notifications ────────────────────────────────────────────
    notification_channel: str = Field(default="slack")
    slack_bot_token: str | None = Field(default=None)
    slack_default_channel: str | None = Field(default=None)
    slack_timeout_seconds: float = Field(default=10.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="auto | json | console")

    @model_validator(mode="after")
    def _validate_rearm(self) -> SchedulerSettings:
        if self.rearm_interval_seconds > self.tick_interval_seconds:
            raise ValueError(
                "rearm_interval_seconds must not exceed tick_interval_seconds "
                f"({self.rearm_interval_seconds} > {self.tick_interval_seconds})"
            )
        if self.log_format not in ("auto", "json", "console"):
            raise ValueError(f"log_format must be auto, json or console, got {self.log_format!r}")
        return self

    @property
    def json_logs(self) -> bool | None:
        """Map ``log_format`` onto ``configure_logging(json_format=...)``."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SchedulerSettings] = {}


def get_settings(*, _force_reload: bool = False) -> SchedulerSettings:
    """Load, validate, and cache the process-wide :class:`SchedulerSettings`."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = SchedulerSettings()
    _settings_cache["default"] = settings
    return settings


def reset_settings() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    _settings_cache.clear()


__all__ = ["SchedulerSettings", "get_settings", "reset_settings"]
