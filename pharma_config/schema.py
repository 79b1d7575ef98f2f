"""
LedgerConfig schema.

Typed, frozen view of the YAML configuration.  The loader parses YAML into
these dataclasses; every section validates itself in ``__post_init__`` and
raises ``ValueError`` on an out-of-range value, so an invalid file never
produces a config object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow must be >= 0, got {self.max_overflow}")


@dataclass(frozen=True)
class LedgerSettings:
    allow_negative_stock: bool = True
    default_uom: str = "unit"
    days_per_month: int = 30

    def __post_init__(self) -> None:
        if self.days_per_month < 1:
            raise ValueError(f"ledger.days_per_month must be >= 1, got {self.days_per_month}")
        if not self.default_uom:
            raise ValueError("ledger.default_uom must not be empty")


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 5
    base_delay_seconds: float = 0.01
    max_delay_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"retry.max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("retry.max_delay_seconds must be >= retry.base_delay_seconds")


@dataclass(frozen=True)
class PurchasingSettings:
    default_currency: str = "MXN"
    default_tax_rate: Decimal = Decimal("0.16")
    code_prefix: str = "PO"

    def __post_init__(self) -> None:
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ValueError(
                f"purchasing.default_currency must be a 3-letter code, got {self.default_currency!r}"
            )
        if not (Decimal("0") <= self.default_tax_rate <= Decimal("1")):
            raise ValueError(
                f"purchasing.default_tax_rate must be in [0, 1], got {self.default_tax_rate}"
            )
        if not self.code_prefix or not self.code_prefix.isalnum():
            raise ValueError(f"purchasing.code_prefix must be alphanumeric, got {self.code_prefix!r}")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Root configuration object returned by ``get_active_config()``."""

    database: DatabaseConfig
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    purchasing: PurchasingSettings = field(default_factory=PurchasingSettings)
    source: str = "defaults"
    checksum: str = ""
