"""Decimal and datetime helpers used by the column types."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

from pharma_kernel.db.types import as_utc, round_money, to_decimal


def test_float_goes_through_repr():
    assert to_decimal(0.1) == Decimal("0.1")


def test_decimal_passes_through():
    value = Decimal("1.500")
    assert to_decimal(value) is value


def test_round_money_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("2.344")) == Decimal("2.34")


def test_as_utc_attaches_zone_to_naive():
    assert as_utc(datetime(2024, 1, 1, 12)).tzinfo == UTC


def test_as_utc_converts_offsets():
    local = datetime(2024, 1, 1, 6, tzinfo=timezone(timedelta(hours=-6)))
    assert as_utc(local) == datetime(2024, 1, 1, 12, tzinfo=UTC)
