"""
Job catalog: the set of schedulable job types and their defaults.

Each job type has a label, a description, a default frequency and cron,
an optional pinned timezone (otherwise ``SHOPSPINE_DEFAULT_TIMEZONE``
applies), whether it can be scoped to a single shop, and a set of default
options. Schedules created for a job type start from these defaults;
the per-type option rules validate operator input at write time and clamp
stored values into range when a handler reads them at execution time.

Architecture:
    ::

        JobCatalog
        ├── keys() / contains(job_type)
        ├── definition(job_type)      → JobDefinition   (UnknownJobTypeError)
        ├── catalog()                 → list[dict]      (listing surface)
        ├── validate_options(t, opts) → {field: error}
        ├── sanitize_options(t, opts) → dict | None     (clamped, defaults merged)
        └── new_schedule(t, ...)      → ScheduleCreate  (OptionsValidationError)

Examples:
    >>> catalog = JobCatalog()
    >>> catalog.definition("orders.fetch_new").default_cron
    '*/5 * * * *'
    >>> catalog.sanitize_options("orders.fetch_new", {"fallback_lookback_hours": 5000})
    {'fallback_lookback_hours': 720}
    >>> catalog.validate_options("woocommerce.fetch_orders", {"per_page": "abc"})
    {'per_page': 'Enter the number of records per page as a number.'}

Tags:
    shopspine, catalog, job-types, options, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shopspine.core.errors import OptionsValidationError, UnknownJobTypeError
from shopspine.core.settings import get_settings
from shopspine.scheduling.models import Frequency, ScheduleCreate

RECOMMENDATION_EXCLUDE_KEYWORDS = [
    "tester",
    "bez víčka",
    "bez vicka",
    "bez krabičky",
    "bez krabicky",
    "vzorek",
    "sample",
]


@dataclass(frozen=True)
class IntOption:
    """Integer option bounded to ``[minimum, maximum]`` (``maximum=None`` is open)."""

    name: str
    default: int
    minimum: int
    maximum: int | None
    not_numeric: str
    out_of_range: str

    def clamp(self, value: int) -> int:
        value = max(self.minimum, value)
        if self.maximum is not None:
            value = min(self.maximum, value)
        return value


@dataclass(frozen=True)
class QueueOption:
    """Queue name option: non-empty string."""

    name: str
    default: str


@dataclass(frozen=True)
class JobDefinition:
    job_type: str
    label: str
    description: str
    default_frequency: Frequency
    default_cron: str
    default_timezone: str | None = None
    supports_shop: bool = False
    default_options: dict[str, Any] = field(default_factory=dict)
    rules: tuple[IntOption | QueueOption, ...] = ()

    def to_dict(self, fallback_timezone: str | None = None) -> dict[str, Any]:
        return {
            "job_type": self.job_type,
            "label": self.label,
            "description": self.description,
            "default_frequency": self.default_frequency.value,
            "default_frequency_label": self.default_frequency.label,
            "default_cron": self.default_cron,
            "default_timezone": self.default_timezone or fallback_timezone,
            "supports_shop": self.supports_shop,
            "default_options": _copy_options(self.default_options),
        }


_HOURS_NOT_NUMERIC = "Enter the number of hours as a number."
_HOURS_RANGE = "Allowed range is 1 to 720 hours (max. 30 days)."


def _lookback(name: str, default: int) -> IntOption:
    return IntOption(name, default, 1, 720, _HOURS_NOT_NUMERIC, _HOURS_RANGE)


_JOBS: tuple[JobDefinition, ...] = (
    JobDefinition(
        job_type="orders.fetch_new",
        label="Fetch new orders",
        description="Periodically downloads new orders from connected shops.",
        default_frequency=Frequency.EVERY_FIVE_MINUTES,
        default_cron="*/5 * * * *",
        supports_shop=True,
        default_options={"fallback_lookback_hours": 24},
        rules=(_lookback("fallback_lookback_hours", 24),),
    ),
    JobDefinition(
        job_type="orders.refresh_statuses",
        label="Refresh order statuses",
        description="Tracks status changes of already imported orders.",
        default_frequency=Frequency.EVERY_FIFTEEN_MINUTES,
        default_cron="*/15 * * * *",
        supports_shop=True,
        default_options={"lookback_hours": 48},
        rules=(_lookback("lookback_hours", 48),),
    ),
    JobDefinition(
        job_type="orders.refresh_statuses_deep",
        label="Refresh order statuses (deep)",
        description="Once a day re-checks order statuses far into the past.",
        default_frequency=Frequency.DAILY,
        default_cron="0 3 * * *",
        supports_shop=True,
        default_options={"lookback_hours": 720},
    ),
    JobDefinition(
        job_type="products.import_master",
        label="Import products from the master shop",
        description="Imports new products from the master shop and keeps the catalog current.",
        default_frequency=Frequency.HOURLY,
        default_cron="0 * * * *",
        supports_shop=True,
        default_options={"fallback_lookback_hours": 168},
    ),
    JobDefinition(
        job_type="customers.recalculate_metrics",
        label="Recalculate customer metrics",
        description="Plans batches that recalculate aggregated customer metrics.",
        default_frequency=Frequency.DAILY,
        default_cron="30 2 * * *",
        supports_shop=False,
        default_options={"queue": "customers_metrics", "chunk": 250},
        rules=(
            IntOption(
                "chunk", 250, 1, 5000,
                "Enter the batch size as a number.",
                "Allowed batch size range is 1 to 5000.",
            ),
            QueueOption("queue", "customers_metrics"),
        ),
    ),
    JobDefinition(
        job_type="customers.backfill_from_orders",
        label="Build customer profiles from orders",
        description="Creates and links customer profiles for orders without an assigned customer.",
        default_frequency=Frequency.EVERY_FIFTEEN_MINUTES,
        default_cron="*/15 * * * *",
        supports_shop=True,
        default_options={"queue": "customers", "chunk": 200},
        rules=(
            IntOption(
                "chunk", 200, 10, 2000,
                "Enter the number of orders per batch as a number.",
                "Allowed batch size range is 10 to 2000 orders.",
            ),
            QueueOption("queue", "customers"),
        ),
    ),
    JobDefinition(
        job_type="customers.fetch_shoptet",
        label="Nightly customer import",
        description="Requests a customer snapshot from the storefront and starts its processing pipeline.",
        default_frequency=Frequency.DAILY,
        default_cron="30 3 * * *",
        supports_shop=True,
    ),
    JobDefinition(
        job_type="woocommerce.fetch_orders",
        label="WooCommerce order import",
        description="Periodically downloads new orders from connected WooCommerce shops.",
        default_frequency=Frequency.EVERY_FIFTEEN_MINUTES,
        default_cron="*/15 * * * *",
        supports_shop=True,
        default_options={"lookback_hours": 24, "per_page": 50, "max_pages": 50},
        rules=(
            _lookback("lookback_hours", 24),
            IntOption(
                "per_page", 50, 1, 100,
                "Enter the number of records per page as a number.",
                "Allowed range is 1 to 100 orders per page.",
            ),
            IntOption(
                "max_pages", 50, 1, None,
                "Enter the maximum number of pages as a number.",
                "The maximum number of pages must be at least 1.",
            ),
        ),
    ),
    JobDefinition(
        job_type="inventory.stock_guard_sync",
        label="Stock guard sync",
        description="Every 30 minutes loads warehouse stock levels for comparison with the storefront.",
        default_frequency=Frequency.CUSTOM,
        default_cron="*/30 * * * *",
        supports_shop=False,
        default_options={"chunk": 200},
    ),
    JobDefinition(
        job_type="inventory.generate_recommendations",
        label="Precompute product recommendations",
        description="Computes recommended products daily and stores them for the admin.",
        default_frequency=Frequency.DAILY,
        default_cron="0 2 * * *",
        supports_shop=False,
        default_options={
            "product_limit": 10,
            "limit": 6,
            "chunk": 50,
            "exclude_keywords": RECOMMENDATION_EXCLUDE_KEYWORDS,
        },
    ),
    JobDefinition(
        job_type="products.sync_all_shops",
        label="Sync products from all shops",
        description="Downloads products from every shop to collect per-locale prices, links and names.",
        default_frequency=Frequency.DAILY,
        default_cron="0 4 * * *",
        supports_shop=False,
        # empty list means every shop
        default_options={"shop_ids": []},
    ),
)


def _copy_options(options: dict[str, Any]) -> dict[str, Any]:
    return {k: list(v) if isinstance(v, list) else v for k, v in options.items()}


def _blank(value: Any) -> bool:
    return value is None or value == ""


def _as_int(value: Any) -> int | None:
    """Numeric value truncated to int, None when not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


class JobCatalog:
    """Registry of known job types and their defaults."""

    def __init__(self, definitions: tuple[JobDefinition, ...] = _JOBS, default_timezone: str | None = None):
        self._definitions = {d.job_type: d for d in definitions}
        self._default_timezone = default_timezone

    @property
    def default_timezone(self) -> str:
        """Timezone for job types that do not pin one (settings value unless overridden)."""
        return self._default_timezone or get_settings().default_timezone

    def keys(self) -> list[str]:
        return list(self._definitions)

    def contains(self, job_type: str) -> bool:
        return job_type in self._definitions

    def definition(self, job_type: str) -> JobDefinition:
        try:
            return self._definitions[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    def catalog(self) -> list[dict[str, Any]]:
        fallback = self.default_timezone
        return [d.to_dict(fallback) for d in self._definitions.values()]

    def validate_options(self, job_type: str, options: dict[str, Any] | None) -> dict[str, str]:
        """Return ``{option: message}`` for every invalid option (empty when valid).

        Blank numeric values are accepted and later replaced by defaults.
        Unknown job types have no rules.
        """
        options = options or {}
        definition = self._definitions.get(job_type)
        if definition is None:
            return {}

        errors: dict[str, str] = {}
        for rule in definition.rules:
            if rule.name not in options:
                continue
            value = options[rule.name]
            if isinstance(rule, QueueOption):
                if _blank(value):
                    errors[rule.name] = "Enter a queue name."
                elif not isinstance(value, str):
                    errors[rule.name] = "Queue name must be a string."
                continue
            if _blank(value):
                continue
            number = _as_int(value)
            if number is None:
                errors[rule.name] = rule.not_numeric
            elif rule.clamp(number) != number:
                errors[rule.name] = rule.out_of_range
        return errors

    def sanitize_options(self, job_type: str, options: dict[str, Any] | None) -> dict[str, Any] | None:
        """Defaults merged with ``options``, numeric options clamped into range.

        Job types without rules take the operator's options over the defaults
        verbatim. Returns None when the result is empty.
        """
        definition = self.definition(job_type)
        options = options or {}
        normalized = _copy_options(definition.default_options)

        if not definition.rules:
            normalized.update(options)
            return normalized or None

        for rule in definition.rules:
            raw = options.get(rule.name)
            if isinstance(rule, QueueOption):
                queue = raw.strip() if isinstance(raw, str) else ""
                normalized[rule.name] = queue or definition.default_options.get(rule.name, rule.default)
                continue
            default = definition.default_options.get(rule.name, rule.default)
            number = _as_int(raw) if not _blank(raw) else None
            normalized[rule.name] = rule.clamp(default if number is None else number)
        return normalized or None

    def new_schedule(
        self,
        job_type: str,
        *,
        name: str | None = None,
        cron_expression: str | None = None,
        timezone: str | None = None,
        frequency: Frequency | None = None,
        shop_id: int | None = None,
        options: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduleCreate:
        """Build a schedule for ``job_type`` with catalog defaults filled in.

        Raises:
            UnknownJobTypeError: ``job_type`` is not in the catalog
            OptionsValidationError: an option fails its rule (blank numbers are allowed)
        """
        definition = self.definition(job_type)
        errors = self.validate_options(job_type, options)
        if errors:
            raise OptionsValidationError(job_type, errors)
        frequency = frequency or definition.default_frequency
        if cron_expression is None:
            if frequency is definition.default_frequency:
                cron_expression = definition.default_cron
            else:
                cron_expression = frequency.default_cron() or definition.default_cron
        return ScheduleCreate(
            name=name or definition.label,
            job_type=job_type,
            cron_expression=cron_expression,
            timezone=timezone or definition.default_timezone or self.default_timezone,
            frequency=frequency,
            shop_id=shop_id if definition.supports_shop else None,
            options=self.sanitize_options(job_type, options) or {},
            enabled=enabled,
        )


_default_catalog: JobCatalog | None = None


def get_catalog() -> JobCatalog:
    """Process-wide catalog instance."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = JobCatalog()
    return _default_catalog


__all__ = [
    "IntOption",
    "QueueOption",
    "JobDefinition",
    "JobCatalog",
    "get_catalog",
]
