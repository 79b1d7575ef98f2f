"""ItemPolicy validation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.exceptions import InvalidPolicyError, ValidationError


def test_defaults_are_zero():
    policy = ItemPolicy(item_id=uuid4())
    assert policy.reorder_point == policy.safety_stock == policy.avg_monthly_consumption == Decimal("0")


def test_reorder_point_below_safety_rejected():
    with pytest.raises(InvalidPolicyError):
        ItemPolicy(item_id=uuid4(), reorder_point=Decimal("5"), safety_stock=Decimal("10"))


@pytest.mark.parametrize("field", ["reorder_point", "safety_stock", "avg_monthly_consumption"])
def test_negative_values_rejected(field):
    with pytest.raises(InvalidPolicyError):
        ItemPolicy(item_id=uuid4(), **{field: Decimal("-1")})


def test_non_numeric_rejected_as_validation_error():
    with pytest.raises(ValidationError):
        ItemPolicy(item_id=uuid4(), safety_stock="lots")


def test_strings_coerced():
    policy = ItemPolicy(item_id=uuid4(), reorder_point="20", safety_stock="10")
    assert policy.reorder_point == Decimal("20")
