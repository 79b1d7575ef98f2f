"""
Module: pharma_kernel.models.movement
Responsibility: ORM persistence for stock movements -- the single source of
    truth for stock.  Stock is never stored; every figure is a projection over
    these rows.
Architecture position: Kernel > Models.  May import from db/ and the pure
    movement arithmetic in domain/movement.py.

Invariants enforced:
    - quantity > 0 (validated by MovementDraft before insert).
    - ADJUST rows carry adjust_sign; IN/OUT rows never do (CHECK constraint).
    - seq is unique and monotonic (SequenceService); it breaks created_at ties.
    - Append-only: ORM listeners in db/immutability.py and PostgreSQL
      triggers reject UPDATE and DELETE.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.
    - IntegrityError on a dangling site/item reference or duplicate seq.

Audit relevance:
    Each row records who (created_by_id), when (created_at from the injected
    clock), why (reason) and against which document (ref_kind/ref_id/ref_code)
    stock moved.  Transfer legs point at each other via counterpart_movement_id.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharma_kernel.db.base import TrackedBase, UUIDString
from pharma_kernel.db.types import Quantity
from pharma_kernel.domain.movement import signed_quantity


class StockMovement(TrackedBase):
    """
    One signed quantity change in one (site, item) scope.

    Contract:
        Rows are inserted by LedgerStore only.  No code path updates or
        deletes them.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_stock_movement_seq"),
        CheckConstraint(
            "(direction = 'ADJUST' AND adjust_sign IN ('IN', 'OUT')) OR "
            "(direction IN ('IN', 'OUT') AND adjust_sign IS NULL)",
            name="ck_stock_movement_adjust_sign",
        ),
        Index("idx_stock_movement_scope", "site_id", "item_id", "created_at"),
        Index("idx_stock_movement_ref", "ref_kind", "ref_id"),
        Index("idx_stock_movement_expiry", "site_id", "expiry_date"),
    )

    seq: Mapped[int] = mapped_column(nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sites.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )

    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    adjust_sign: Mapped[str | None] = mapped_column(String(3), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity(), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False)

    batch_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    unit_cost: Mapped[Decimal | None] = mapped_column(Quantity(), nullable=True)

    ref_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    ref_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    ref_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    counterpart_movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    @property
    def signed_quantity(self) -> Decimal:
        return signed_quantity(self.direction, self.quantity, self.adjust_sign)

    def __repr__(self) -> str:
        return f"<StockMovement seq={self.seq} {self.direction} {self.quantity}>"
