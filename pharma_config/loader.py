"""
Configuration Loader (``pharma_config.loader``).

Responsibility
--------------
Loads the built-in ``defaults.yaml``, deep-merges an optional override file
on top of it, applies the ``DATABASE_URL`` environment variable, and parses
the result into the typed ``pharma_config.schema`` dataclasses.

The single public entry point for runtime config is
``pharma_config.get_active_config()``.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
* Out-of-range value  -> ``ValueError`` from the schema ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pharma_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LedgerSettings,
    PurchasingSettings,
    RetrySettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = {
    "database": DatabaseConfig,
    "ledger": LedgerSettings,
    "retry": RetrySettings,
    "purchasing": PurchasingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return base with override applied; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _check_keys(section: str, data: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {section!r}: {sorted(unknown)}")


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    _check_keys("database", data, {"url", "echo", "pool_size", "max_overflow", "pool_timeout"})
    return DatabaseConfig(
        url=str(data["url"]),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
    )


def parse_ledger(data: Mapping[str, Any]) -> LedgerSettings:
    _check_keys("ledger", data, {"allow_negative_stock", "default_uom", "days_per_month"})
    return LedgerSettings(
        allow_negative_stock=bool(data.get("allow_negative_stock", True)),
        default_uom=str(data.get("default_uom", "unit")),
        days_per_month=int(data.get("days_per_month", 30)),
    )


def parse_retry(data: Mapping[str, Any]) -> RetrySettings:
    _check_keys("retry", data, {"max_attempts", "base_delay_seconds", "max_delay_seconds"})
    return RetrySettings(
        max_attempts=int(data.get("max_attempts", 5)),
        base_delay_seconds=float(data.get("base_delay_seconds", 0.01)),
        max_delay_seconds=float(data.get("max_delay_seconds", 0.5)),
    )


def parse_purchasing(data: Mapping[str, Any]) -> PurchasingSettings:
    _check_keys("purchasing", data, {"default_currency", "default_tax_rate", "code_prefix"})
    return PurchasingSettings(
        default_currency=str(data.get("default_currency", "MXN")).upper(),
        default_tax_rate=_parse_decimal(
            data.get("default_tax_rate", "0.16"), "purchasing.default_tax_rate"
        ),
        code_prefix=str(data.get("code_prefix", "PO")),
    )


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of the merged configuration mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: Mapping[str, Any], source: str = "defaults") -> LedgerConfig:
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return LedgerConfig(
        database=parse_database(data.get("database") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
        retry=parse_retry(data.get("retry") or {}),
        purchasing=parse_purchasing(data.get("purchasing") or {}),
        source=source,
        checksum=compute_checksum(data),
    )


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Build a LedgerConfig from defaults, an optional override file and the
    environment.

    Precedence (later wins): defaults.yaml, override file, DATABASE_URL.
    """
    environ = environ or {}
    data = load_yaml_file(DEFAULTS_PATH)
    source = "defaults"
    if path is not None:
        data = deep_merge(data, load_yaml_file(Path(path)))
        source = str(path)
    if environ.get("DATABASE_URL"):
        data = deep_merge(data, {"database": {"url": environ["DATABASE_URL"]}})
    return parse_config(data, source=source)
