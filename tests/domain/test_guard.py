"""InvariantGuard: the safety-floor rule."""

from decimal import Decimal
from uuid import uuid4

import pytest

from pharma_kernel.domain.guard import InvariantGuard
from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.exceptions import SafetyStockViolation


def _policy(safety="10", reorder="20") -> ItemPolicy:
    return ItemPolicy(item_id=uuid4(), reorder_point=Decimal(reorder), safety_stock=Decimal(safety))


class TestSafetyFloor:

    def test_projection_at_floor_allowed(self):
        InvariantGuard().check(uuid4(), _policy(), Decimal("10"), current=Decimal("15"))

    def test_projection_below_floor_rejected_with_values(self):
        site_id = uuid4()
        policy = _policy()
        with pytest.raises(SafetyStockViolation) as exc_info:
            InvariantGuard().check(site_id, policy, Decimal("5"), current=Decimal("60"))

        violation = exc_info.value
        assert violation.code == "SAFETY_STOCK_VIOLATION"
        assert violation.projected == Decimal("5")
        assert violation.safety_stock == Decimal("10")
        assert violation.current == Decimal("60")
        assert violation.site_id == str(site_id)
        assert violation.item_id == str(policy.item_id)

    def test_zero_safety_allows_negative_by_default(self):
        InvariantGuard().check(uuid4(), _policy("0", "0"), Decimal("-3"), current=Decimal("0"))

    def test_zero_safety_rejects_negative_when_configured(self):
        guard = InvariantGuard(allow_negative_stock=False)
        with pytest.raises(SafetyStockViolation) as exc_info:
            guard.check(uuid4(), _policy("0", "0"), Decimal("-1"), current=Decimal("0"))
        assert exc_info.value.safety_stock == Decimal("0")

    def test_floor_for(self):
        assert InvariantGuard().floor_for(_policy("0", "0")) is None
        assert InvariantGuard(allow_negative_stock=False).floor_for(_policy("0", "0")) == Decimal("0")
        assert InvariantGuard().floor_for(_policy("7", "9")) == Decimal("7")

    def test_violation_logged(self, captured_logs):
        with pytest.raises(SafetyStockViolation):
            InvariantGuard().check(uuid4(), _policy(), Decimal("1"), current=Decimal("2"))
        assert any(r["message"] == "safety_stock_violation" for r in captured_logs())
