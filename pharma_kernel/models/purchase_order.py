"""
Module: pharma_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders and their lines.  The
    ledger consumes orders when stock is received against them; the
    purchasing module owns the create/send/cancel lifecycle.
Architecture position: Kernel > Models.  May import from db/ and the pure
    order arithmetic in domain/order_state.py.

Invariants enforced:
    - Order codes are unique.
    - subtotal / tax_amount / total are recomputed from the lines before every
      flush (session before_flush hook), so stored totals never drift.
    - Receipt progress is never stored; it is derived from the ledger by
      ReceiptSelector.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from pharma_kernel.db.base import Base, TrackedBase, UUIDString
from pharma_kernel.db.types import Quantity
from pharma_kernel.domain.order_state import PurchaseOrderStatus, compute_totals, line_subtotal


class PurchaseOrderModel(TrackedBase):
    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("code", name="uq_purchase_order_code"),
        Index("idx_purchase_order_site_supplier", "site_id", "supplier_id", "created_at"),
        Index("idx_purchase_order_status", "status", "created_at"),
    )

    code: Mapped[str] = mapped_column(String(40), nullable=False)
    site_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sites.id"), nullable=False
    )
    supplier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseOrderStatus.DRAFT.value
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="MXN")
    tax_rate: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))

    expected_delivery: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_no",
    )

    @property
    def is_closed(self) -> bool:
        return self.status in (
            PurchaseOrderStatus.RECEIVED.value,
            PurchaseOrderStatus.CANCELLED.value,
        )

    def recalculate_totals(self) -> None:
        for line in self.lines:
            line.subtotal = line_subtotal(line.quantity, line.unit_price)
        self.subtotal, self.tax_amount, self.total = compute_totals(
            ((line.quantity, line.unit_price) for line in self.lines),
            self.tax_rate,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.code} {self.status}>"


class PurchaseOrderLineModel(Base):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "line_no", name="uq_purchase_order_line_no"),
        Index("idx_purchase_order_line_item", "item_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity(), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")
    unit_price: Mapped[Decimal] = mapped_column(Quantity(), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    batch_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    order: Mapped[PurchaseOrderModel] = relationship(back_populates="lines")


def _recompute_order_totals(session, flush_context, instances):
    """Recompute totals of every new or modified order before it is flushed."""
    touched: dict[int, PurchaseOrderModel] = {}
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, PurchaseOrderModel):
            touched[id(obj)] = obj
        elif isinstance(obj, PurchaseOrderLineModel) and obj.order is not None:
            touched[id(obj.order)] = obj.order
    for order in touched.values():
        order.recalculate_totals()


if not event.contains(Session, "before_flush", _recompute_order_totals):
    event.listen(Session, "before_flush", _recompute_order_totals)
