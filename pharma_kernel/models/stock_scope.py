"""
Module: pharma_kernel.models.stock_scope
Responsibility: One lock row per (site, item) stock scope.  Writers lock the
    rows of every scope they touch before projecting, and bump ``version``
    with a compare-and-set, so two check-and-write sequences on the same scope
    can never interleave.
Architecture position: Kernel > Models.  Used only by ScopeLockService.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharma_kernel.db.base import Base, UUIDString


class StockScopeLock(Base):
    __tablename__ = "stock_scope_locks"

    __table_args__ = (
        UniqueConstraint("site_id", "item_id", name="uq_stock_scope"),
    )

    site_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sites.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<StockScopeLock {self.site_id}/{self.item_id} v{self.version}>"
