"""
DTOs -- immutable results returned by selectors and services.

Responsibility:
    Every read and write operation hands back frozen dataclasses, never ORM
    entities.  ``from_model`` converters live here but are only called from
    the selector/service layer.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from pharma_kernel.domain.events import DomainEvent

if TYPE_CHECKING:
    from pharma_kernel.models.movement import StockMovement
    from pharma_kernel.models.purchase_order import PurchaseOrderModel


@dataclass(frozen=True)
class MovementRecord:
    """Read-only view of a committed ledger movement."""

    id: UUID
    seq: int
    site_id: UUID
    item_id: UUID
    direction: str
    adjust_sign: str | None
    quantity: Decimal
    signed_quantity: Decimal
    uom: str
    batch_label: str | None
    expiry_date: date | None
    unit_cost: Decimal | None
    ref_kind: str
    ref_id: UUID | None
    ref_code: str | None
    reason: str
    notes: str | None
    counterpart_movement_id: UUID | None
    created_at: datetime
    created_by_id: UUID

    @classmethod
    def from_model(cls, row: StockMovement) -> MovementRecord:
        return cls(
            id=row.id,
            seq=row.seq,
            site_id=row.site_id,
            item_id=row.item_id,
            direction=row.direction,
            adjust_sign=row.adjust_sign,
            quantity=row.quantity,
            signed_quantity=row.signed_quantity,
            uom=row.uom,
            batch_label=row.batch_label,
            expiry_date=row.expiry_date,
            unit_cost=row.unit_cost,
            ref_kind=row.ref_kind,
            ref_id=row.ref_id,
            ref_code=row.ref_code,
            reason=row.reason,
            notes=row.notes,
            counterpart_movement_id=row.counterpart_movement_id,
            created_at=row.created_at,
            created_by_id=row.created_by_id,
        )


@dataclass(frozen=True)
class MovementResult:
    """
    Outcome of a single-movement write.

    before/after are site-wide item totals around the write; projected is the
    value the guard evaluated (equal to after).
    """

    movement_id: UUID | None
    before: Decimal
    after: Decimal
    projected: Decimal
    events: tuple[DomainEvent, ...] = field(default=())


@dataclass(frozen=True)
class TransferResult:
    out_movement_id: UUID
    in_movement_id: UUID
    source_before: Decimal
    source_after: Decimal
    destination_before: Decimal
    destination_after: Decimal
    events: tuple[DomainEvent, ...] = field(default=())


@dataclass(frozen=True)
class ReceiptLineProgress:
    line_no: int
    item_id: UUID
    ordered: Decimal
    received: Decimal
    pending: Decimal


@dataclass(frozen=True)
class ReceiptProgress:
    order_id: UUID
    lines: tuple[ReceiptLineProgress, ...]

    @property
    def is_complete(self) -> bool:
        return all(line.received >= line.ordered for line in self.lines)


@dataclass(frozen=True)
class ReceiptResult:
    order_id: UUID
    movement_ids: tuple[UUID, ...]
    old_status: str
    new_status: str
    progress: ReceiptProgress
    events: tuple[DomainEvent, ...] = field(default=())


@dataclass(frozen=True)
class WriteOffLine:
    item_id: UUID
    batch_label: str | None
    expiry_date: date | None
    quantity: Decimal
    movement_id: UUID | None = None
    skipped_reason: str | None = None
    projected: Decimal | None = None
    safety_stock: Decimal | None = None


@dataclass(frozen=True)
class WriteOffResult:
    site_id: UUID
    cutoff: date
    written_off: tuple[WriteOffLine, ...]
    skipped: tuple[WriteOffLine, ...]
    events: tuple[DomainEvent, ...] = field(default=())


@dataclass(frozen=True)
class KardexRow:
    """One row of a balance replay."""

    movement_id: UUID
    seq: int
    created_at: datetime
    direction: str
    adjust_sign: str | None
    quantity: Decimal
    signed_quantity: Decimal
    balance_after: Decimal
    batch_label: str | None
    expiry_date: date | None
    reason: str
    ref_kind: str
    ref_code: str | None


@dataclass(frozen=True)
class MovementFilter:
    site_id: UUID | None = None
    item_id: UUID | None = None
    direction: str | None = None
    ref_kind: str | None = None
    ref_id: UUID | None = None
    batch_label: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class MovementPage:
    items: tuple[MovementRecord, ...]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


@dataclass(frozen=True)
class PurchaseOrderLineView:
    line_no: int
    item_id: UUID
    description: str | None
    quantity: Decimal
    uom: str
    unit_price: Decimal
    subtotal: Decimal
    batch_label: str | None
    expiry_date: date | None


@dataclass(frozen=True)
class PurchaseOrderView:
    id: UUID
    code: str
    site_id: UUID
    supplier_id: UUID
    status: str
    currency: str
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    expected_delivery: date | None
    received_at: datetime | None
    cancelled_at: datetime | None
    notes: str | None
    created_at: datetime
    lines: tuple[PurchaseOrderLineView, ...]

    @classmethod
    def from_model(cls, order: PurchaseOrderModel) -> PurchaseOrderView:
        return cls(
            id=order.id,
            code=order.code,
            site_id=order.site_id,
            supplier_id=order.supplier_id,
            status=order.status,
            currency=order.currency,
            tax_rate=order.tax_rate,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            total=order.total,
            expected_delivery=order.expected_delivery,
            received_at=order.received_at,
            cancelled_at=order.cancelled_at,
            notes=order.notes,
            created_at=order.created_at,
            lines=tuple(
                PurchaseOrderLineView(
                    line_no=line.line_no,
                    item_id=line.item_id,
                    description=line.description,
                    quantity=line.quantity,
                    uom=line.uom,
                    unit_price=line.unit_price,
                    subtotal=line.subtotal,
                    batch_label=line.batch_label,
                    expiry_date=line.expiry_date,
                )
                for line in sorted(order.lines, key=lambda l: l.line_no)
            ),
        )


@dataclass(frozen=True)
class PurchaseOrderFilter:
    site_id: UUID | None = None
    supplier_id: UUID | None = None
    status: str | None = None
    code_contains: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class PurchaseOrderPage:
    items: tuple[PurchaseOrderView, ...]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


@dataclass(frozen=True)
class ReceiptInput:
    """One received line in a purchase-order receipt request."""

    item_id: UUID
    quantity: Decimal
    batch_label: str | None = None
    expiry_date: date | None = None
    unit_cost: Decimal | None = None
