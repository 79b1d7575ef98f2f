"""
Reorder arithmetic -- pure evaluation of a scope against its item policy.

Responsibility:
    Given a stock figure and an ItemPolicy, decide whether the reorder point
    has been reached, derive consumption coverage, and size a replenishment
    proposal.  The same inputs always produce the same evaluation.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The ReorderEvaluator service supplies
    the stock projection and publishes the resulting events.

Rules:
    triggered      = stock <= reorder_point
    daily          = avg_monthly_consumption / days_per_month
    days_coverage  = floor(stock / daily), None when daily is 0
    proposed_qty   = max(0, safety_stock + avg_monthly_consumption - stock)
    A proposal is emitted only when triggered, a preferred supplier exists
    and proposed_qty > 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from uuid import UUID

from pharma_kernel.domain.events import LowStockDetected, ReplenishmentProposed
from pharma_kernel.domain.policy import ItemPolicy

ZERO = Decimal("0")
DEFAULT_DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class ReorderEvaluation:
    site_id: UUID
    item_id: UUID
    triggered: bool
    stock: Decimal
    reorder_point: Decimal
    safety_stock: Decimal
    daily_consumption: Decimal
    days_coverage: int | None
    shortfall_qty: Decimal
    supplier_id: UUID | None
    events: tuple[LowStockDetected | ReplenishmentProposed, ...] = field(default=())

    @property
    def low_stock_event(self) -> LowStockDetected | None:
        for ev in self.events:
            if isinstance(ev, LowStockDetected):
                return ev
        return None

    @property
    def proposal(self) -> ReplenishmentProposed | None:
        for ev in self.events:
            if isinstance(ev, ReplenishmentProposed):
                return ev
        return None


def daily_consumption(avg_monthly: Decimal, days_per_month: int = DEFAULT_DAYS_PER_MONTH) -> Decimal:
    if avg_monthly <= ZERO:
        return ZERO
    return avg_monthly / Decimal(days_per_month)


def days_coverage(stock: Decimal, daily: Decimal) -> int | None:
    if daily == ZERO:
        return None
    return int((stock / daily).to_integral_value(rounding=ROUND_FLOOR))


def proposed_quantity(stock: Decimal, policy: ItemPolicy) -> Decimal:
    target = policy.safety_stock + policy.avg_monthly_consumption
    return max(ZERO, target - stock)


def evaluate_reorder(
    site_id: UUID,
    policy: ItemPolicy,
    stock: Decimal,
    occurred_at: datetime,
    days_per_month: int = DEFAULT_DAYS_PER_MONTH,
) -> ReorderEvaluation:
    """
    Evaluate one (site, item) scope.

    Preconditions: stock is the site-wide projection for the item.
    Postconditions: events is empty when not triggered; otherwise it holds a
        LowStockDetected and, when a supplier is known and the shortfall is
        positive, a ReplenishmentProposed.
    """
    daily = daily_consumption(policy.avg_monthly_consumption, days_per_month)
    coverage = days_coverage(stock, daily)
    shortfall = proposed_quantity(stock, policy)
    triggered = stock <= policy.reorder_point

    events: list[LowStockDetected | ReplenishmentProposed] = []
    if triggered:
        events.append(
            LowStockDetected(
                site_id=site_id,
                item_id=policy.item_id,
                stock=stock,
                reorder_point=policy.reorder_point,
                safety_stock=policy.safety_stock,
                avg_monthly_consumption=policy.avg_monthly_consumption,
                daily_consumption=daily,
                days_coverage=coverage,
                occurred_at=occurred_at,
            )
        )
        if policy.preferred_supplier_id is not None and shortfall > ZERO:
            events.append(
                ReplenishmentProposed(
                    site_id=site_id,
                    item_id=policy.item_id,
                    supplier_id=policy.preferred_supplier_id,
                    proposed_qty=shortfall,
                    stock=stock,
                    occurred_at=occurred_at,
                )
            )

    return ReorderEvaluation(
        site_id=site_id,
        item_id=policy.item_id,
        triggered=triggered,
        stock=stock,
        reorder_point=policy.reorder_point,
        safety_stock=policy.safety_stock,
        daily_consumption=daily,
        days_coverage=coverage,
        shortfall_qty=shortfall,
        supplier_id=policy.preferred_supplier_id,
        events=tuple(events),
    )
