"""
Module: pharma_kernel.models.reference
Responsibility: ORM persistence for the reference data the ledger resolves
    against -- sites (hospitals, pharmacies, warehouses) and items
    (medications) with their stocking policy.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Site and item codes are unique.
    - Item policy values are stored exactly (Quantity columns); the
      reorder_point >= safety_stock rule is checked by ReferenceDataService
      through the ItemPolicy value object before any write.

Audit relevance:
    Policies are mutable master data.  Movements never copy policy values, so
    a policy change affects only future guard and reorder decisions.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharma_kernel.db.base import TrackedBase, UUIDString
from pharma_kernel.db.types import Quantity


class SiteModel(TrackedBase):
    """A stocking location.  Each (site, item) pair is one stock scope."""

    __tablename__ = "sites"

    __table_args__ = (UniqueConstraint("code", name="uq_site_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Site {self.code}>"


class ItemModel(TrackedBase):
    """
    A stocked item and its global stocking policy.

    Contract:
        reorder_point, safety_stock and avg_monthly_consumption apply to the
        item at every site.  preferred_supplier_id is an opaque reference to
        supplier master data held outside the ledger.
    """

    __tablename__ = "items"

    __table_args__ = (UniqueConstraint("code", name="uq_item_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")
    unit_cost: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    preferred_supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reorder_point: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    safety_stock: Mapped[Decimal] = mapped_column(Quantity(), nullable=False, default=Decimal("0"))
    avg_monthly_consumption: Mapped[Decimal] = mapped_column(
        Quantity(), nullable=False, default=Decimal("0")
    )

    def __repr__(self) -> str:
        return f"<Item {self.code}>"
