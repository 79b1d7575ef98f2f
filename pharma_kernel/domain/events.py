"""
Domain events published after commit.

Events are facts about committed state.  They are built inside a unit of
work but only handed to subscribers once that unit of work has committed, so
a rolled-back operation never announces anything.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class LowStockDetected:
    site_id: UUID
    item_id: UUID
    stock: Decimal
    reorder_point: Decimal
    safety_stock: Decimal
    avg_monthly_consumption: Decimal
    daily_consumption: Decimal
    days_coverage: int | None
    occurred_at: datetime


@dataclass(frozen=True)
class ReplenishmentProposed:
    site_id: UUID
    item_id: UUID
    supplier_id: UUID
    proposed_qty: Decimal
    stock: Decimal
    occurred_at: datetime


@dataclass(frozen=True)
class PurchaseOrderStatusChanged:
    order_id: UUID
    code: str
    site_id: UUID
    old_status: str | None
    new_status: str
    occurred_at: datetime


DomainEvent = LowStockDetected | ReplenishmentProposed | PurchaseOrderStatusChanged
