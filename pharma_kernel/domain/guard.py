"""
InvariantGuard -- safety-stock floor for stock-decreasing operations.

Responsibility:
    Decides whether a projected post-operation stock figure is acceptable for
    a scope.  Called by the movement writer after locking the scope and
    projecting, and before appending.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - A decreasing operation is rejected iff safety_stock > 0 and the
      projected stock is strictly below safety_stock.
    - When negative stock is disallowed, a floor of 0 also applies to items
      whose safety stock is 0.
    - Increasing operations are never checked.
"""

from decimal import Decimal
from uuid import UUID

from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.exceptions import SafetyStockViolation
from pharma_kernel.logging_config import get_logger

logger = get_logger("domain.guard")

ZERO = Decimal("0")


class InvariantGuard:
    """
    Contract:
        ``check`` returns None when the operation may proceed and raises
        SafetyStockViolation otherwise.  No state, no I/O besides logging.
    """

    def __init__(self, allow_negative_stock: bool = True):
        self._allow_negative_stock = allow_negative_stock

    def floor_for(self, policy: ItemPolicy) -> Decimal | None:
        """Effective floor for a policy, or None when no floor applies."""
        if policy.safety_stock > ZERO:
            return policy.safety_stock
        if not self._allow_negative_stock:
            return ZERO
        return None

    def check(
        self,
        site_id: UUID,
        policy: ItemPolicy,
        projected_after: Decimal,
        current: Decimal,
    ) -> None:
        floor = self.floor_for(policy)
        if floor is None or projected_after >= floor:
            return
        logger.warning(
            "safety_stock_violation",
            extra={
                "site_id": str(site_id),
                "item_id": str(policy.item_id),
                "current": current,
                "projected": projected_after,
                "safety_stock": floor,
            },
        )
        raise SafetyStockViolation(
            site_id=str(site_id),
            item_id=str(policy.item_id),
            current=current,
            projected=projected_after,
            safety_stock=floor,
        )
