"""
Module: pharma_kernel.selectors.purchase_order_selector
Responsibility: Filtered, paginated listing of purchase orders.
Architecture position: Kernel > Selectors.

Listing is newest first (created_at desc, code desc).  Paging follows
``clamp_page``: ``limit`` in [1, MAX_PAGE_SIZE], ``page`` >= 1.
``code_contains`` is a case-insensitive literal substring match.
"""

from sqlalchemy import func, select

from pharma_kernel.domain.dtos import PurchaseOrderFilter, PurchaseOrderPage, PurchaseOrderView
from pharma_kernel.domain.movement import coerce_enum
from pharma_kernel.domain.order_state import PurchaseOrderStatus
from pharma_kernel.models.purchase_order import PurchaseOrderModel
from pharma_kernel.selectors.base import BaseSelector
from pharma_kernel.selectors.movement_selector import DEFAULT_PAGE_SIZE, clamp_page


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PurchaseOrderSelector(BaseSelector[PurchaseOrderModel]):

    def _apply_filter(self, stmt, flt: PurchaseOrderFilter):
        if flt.site_id is not None:
            stmt = stmt.where(PurchaseOrderModel.site_id == flt.site_id)
        if flt.supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == flt.supplier_id)
        if flt.status is not None:
            status = coerce_enum(PurchaseOrderStatus, flt.status, "status")
            stmt = stmt.where(PurchaseOrderModel.status == status.value)
        if flt.code_contains:
            pattern = f"%{_escape_like(flt.code_contains.strip())}%"
            stmt = stmt.where(PurchaseOrderModel.code.ilike(pattern, escape="\\"))
        if flt.date_from is not None:
            stmt = stmt.where(PurchaseOrderModel.created_at >= flt.date_from)
        if flt.date_to is not None:
            stmt = stmt.where(PurchaseOrderModel.created_at <= flt.date_to)
        return stmt

    def list_orders(
        self,
        flt: PurchaseOrderFilter | None = None,
        page: int | None = 1,
        limit: int | None = DEFAULT_PAGE_SIZE,
    ) -> PurchaseOrderPage:
        flt = flt or PurchaseOrderFilter()
        page, limit = clamp_page(page, limit)

        total = self.session.execute(
            self._apply_filter(select(func.count(PurchaseOrderModel.id)), flt)
        ).scalar_one()

        rows = self.session.scalars(
            self._apply_filter(select(PurchaseOrderModel), flt)
            .order_by(PurchaseOrderModel.created_at.desc(), PurchaseOrderModel.code.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return PurchaseOrderPage(
            items=tuple(PurchaseOrderView.from_model(r) for r in rows),
            page=page,
            limit=limit,
            total=total,
        )
