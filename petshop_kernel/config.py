"""
Configuration loading (``petshop_kernel.config``).

Responsibility
--------------
Reads the YAML settings file and parses it into a frozen ``Settings``
dataclass.  Every service receives the values it needs through its
constructor; nothing reads the YAML file or the environment at call time.

Resolution order
----------------
1. Explicit ``path`` argument to ``load_settings``.
2. ``PETSHOP_CONFIG`` environment variable.
3. The bundled ``config/petshop.yaml``.

``DATABASE_URL`` in the environment always overrides ``database.url``.

Failure modes
-------------
* Missing explicit file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Unknown timezone, non-numeric price or tolerance -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "petshop.yaml"

CONFIG_ENV_VAR = "PETSHOP_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


@dataclass(frozen=True)
class CategoryDefaults:
    """Category labels stamped on ledger records when the caller gives none."""

    service: str = "Services"
    sale: str = "Sales"
    manual_income: str = "Ad-hoc Income"
    manual_expense: str = "Operating Expense"


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings for the till kernel."""

    database_url: str = "sqlite:///petshop.db"
    timezone: str = "UTC"
    cash_payment_method: str = "Cash"
    match_tolerance: Decimal = Decimal("0.01")
    log_level: str = "INFO"
    categories: CategoryDefaults = field(default_factory=CategoryDefaults)
    service_prices: Mapping[str, Decimal] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def _parse_decimal(value: Any, where: str) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{where}: {value!r} is not a number") from exc
    if not parsed.is_finite() or parsed < 0:
        raise ValueError(f"{where}: {value!r} must be a non-negative number")
    return parsed


def _parse_services(raw: Any) -> Mapping[str, Decimal]:
    """Accept either a list of {name, price} items or a name -> price mapping."""
    if raw is None:
        return MappingProxyType({})
    prices: dict[str, Decimal] = {}
    if isinstance(raw, dict):
        items = [{"name": k, "price": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValueError("services: expected a list or a mapping")
    for item in items:
        name = str(item["name"]).strip()
        if not name:
            raise ValueError("services: service name must not be empty")
        prices[name] = _parse_decimal(item["price"], f"services.{name}.price")
    return MappingProxyType(prices)


def parse_settings(data: Mapping[str, Any]) -> Settings:
    """Build Settings from an already-parsed YAML mapping."""
    defaults = Settings()
    database = data.get("database") or {}
    till = data.get("till") or {}
    categories = data.get("categories") or {}
    logging_cfg = data.get("logging") or {}

    tz_name = str(data.get("timezone", defaults.timezone))
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timezone: unknown IANA timezone {tz_name!r}") from exc

    cash_label = str(till.get("cash_payment_method", defaults.cash_payment_method)).strip()
    if not cash_label:
        raise ValueError("till.cash_payment_method must not be empty")

    default_categories = CategoryDefaults()
    return Settings(
        database_url=str(database.get("url", defaults.database_url)),
        timezone=tz_name,
        cash_payment_method=cash_label,
        match_tolerance=_parse_decimal(
            till.get("match_tolerance", defaults.match_tolerance),
            "till.match_tolerance",
        ),
        log_level=str(logging_cfg.get("level", defaults.log_level)).upper(),
        categories=CategoryDefaults(
            service=categories.get("service", default_categories.service),
            sale=categories.get("sale", default_categories.sale),
            manual_income=categories.get(
                "manual_income", default_categories.manual_income
            ),
            manual_expense=categories.get(
                "manual_expense", default_categories.manual_expense
            ),
        ),
        service_prices=_parse_services(data.get("services")),
    )


def load_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML, applying the ``DATABASE_URL`` override.

    Args:
        path: Settings file. Defaults to ``$PETSHOP_CONFIG`` or the bundled file.

    Returns:
        Frozen Settings instance.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    path = Path(path)

    # The bundled file is optional (not shipped in wheels); explicit paths are not.
    if path == DEFAULT_CONFIG_PATH and not path.exists():
        data: dict[str, Any] = {}
    else:
        data = load_yaml_file(path)
    settings = parse_settings(data)

    env_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if env_url:
        settings = replace(settings, database_url=env_url)
    return settings
