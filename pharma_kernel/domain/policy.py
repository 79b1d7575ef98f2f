"""
ItemPolicy -- stocking policy for an item.

Global per item (not per site): reorder point, safety stock and average
monthly consumption.  The policy is consulted per (site, item) scope.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID

from pharma_kernel.db.types import to_decimal
from pharma_kernel.exceptions import InvalidPolicyError

ZERO = Decimal("0")


def _non_negative(name: str, value) -> Decimal:
    try:
        dec = to_decimal(value if value is not None else 0)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPolicyError(f"{name} must be a number, got {value!r}") from None
    if not dec.is_finite() or dec < ZERO:
        raise InvalidPolicyError(f"{name} must be >= 0, got {value}")
    return dec


@dataclass(frozen=True)
class ItemPolicy:
    """
    Contract:
        reorder_point >= safety_stock; all three values >= 0.

    Raises:
        InvalidPolicyError: On construction with inconsistent values.
    """

    item_id: UUID
    reorder_point: Decimal = ZERO
    safety_stock: Decimal = ZERO
    avg_monthly_consumption: Decimal = ZERO
    preferred_supplier_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "reorder_point", _non_negative("reorder_point", self.reorder_point))
        object.__setattr__(self, "safety_stock", _non_negative("safety_stock", self.safety_stock))
        object.__setattr__(
            self,
            "avg_monthly_consumption",
            _non_negative("avg_monthly_consumption", self.avg_monthly_consumption),
        )
        if self.reorder_point < self.safety_stock:
            raise InvalidPolicyError(
                f"reorder_point ({self.reorder_point}) must be >= "
                f"safety_stock ({self.safety_stock})"
            )

    @classmethod
    def from_model(cls, item) -> ItemPolicy:
        """Build from an ItemModel row."""
        return cls(
            item_id=item.id,
            reorder_point=item.reorder_point,
            safety_stock=item.safety_stock,
            avg_monthly_consumption=item.avg_monthly_consumption,
            preferred_supplier_id=item.preferred_supplier_id,
        )
