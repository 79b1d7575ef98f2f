"""
Module: pharma_kernel.db.types
Responsibility: Column types and helpers for exact stock quantities and
    timezone-aware timestamps.  Centralizes precision so that every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  Quantities are Decimal end to end:
      Numeric(38, 9) on PostgreSQL, canonical decimal strings on SQLite
      (pysqlite has no native decimal and would round-trip through float).
    - Timestamps are stored in UTC and always loaded as aware datetimes.

Failure modes:
    - InvalidOperation / ValueError from to_decimal() on non-numeric input.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

QUANTITY_DECIMAL_PLACES = 9
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)


class Quantity(TypeDecorator):
    """
    Exact decimal column.

    Contract:
        Binds Decimal (or int/str convertible to Decimal) and always returns
        Decimal.  Values are quantized to QUANTITY_DECIMAL_PLACES.

    Guarantees:
        - PostgreSQL: NUMERIC(38, 9).
        - SQLite: VARCHAR holding the canonical decimal string.
    """

    impl = Numeric(38, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(38, QUANTITY_DECIMAL_PLACES, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        quantized = quantize_quantity(value)
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    SQLite has no timezone support; values are normalised to UTC before
    binding and the tzinfo is re-attached on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# ISO 4217 currency code (e.g., "MXN", "USD")
Currency = Annotated[str, String(3)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for notes and descriptions
LongText = Annotated[str, String(4000)]


def to_decimal(value) -> Decimal:
    """
    Convert an incoming quantity to Decimal without passing through float
    formatting artefacts.

    Raises:
        InvalidOperation: If value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def quantize_quantity(value) -> Decimal:
    """Round a quantity to the stored precision, exactly as the column does."""
    return to_decimal(value).quantize(_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary value (purchase-order totals) half-up."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=DEFAULT_ROUNDING)


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive input is taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
