"""
Module: pharma_kernel.selectors.movement_selector
Responsibility: Lookup and paginated listing of ledger movements.
Architecture position: Kernel > Selectors.

Listing is newest first (created_at desc, seq desc).  ``limit`` is clamped to
[1, MAX_PAGE_SIZE] and ``page`` to >= 1.
"""

from uuid import UUID

from sqlalchemy import func, select

from pharma_kernel.domain.dtos import MovementFilter, MovementPage, MovementRecord
from pharma_kernel.domain.movement import Direction, RefKind, coerce_enum
from pharma_kernel.exceptions import MovementNotFoundError
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or DEFAULT_PAGE_SIZE)))
    return page, limit


class MovementSelector(BaseSelector[StockMovement]):

    def get(self, movement_id: UUID) -> MovementRecord:
        """
        Raises:
            MovementNotFoundError: If no movement has this id.
        """
        row = self.session.get(StockMovement, movement_id)
        if row is None:
            raise MovementNotFoundError(str(movement_id))
        return MovementRecord.from_model(row)

    def _apply_filter(self, stmt, flt: MovementFilter):
        if flt.site_id is not None:
            stmt = stmt.where(StockMovement.site_id == flt.site_id)
        if flt.item_id is not None:
            stmt = stmt.where(StockMovement.item_id == flt.item_id)
        if flt.direction is not None:
            direction = coerce_enum(Direction, flt.direction, "direction")
            stmt = stmt.where(StockMovement.direction == direction.value)
        if flt.ref_kind is not None:
            ref_kind = coerce_enum(RefKind, flt.ref_kind, "ref_kind")
            stmt = stmt.where(StockMovement.ref_kind == ref_kind.value)
        if flt.ref_id is not None:
            stmt = stmt.where(StockMovement.ref_id == flt.ref_id)
        if flt.batch_label is not None:
            stmt = stmt.where(StockMovement.batch_label == flt.batch_label)
        if flt.date_from is not None:
            stmt = stmt.where(StockMovement.created_at >= flt.date_from)
        if flt.date_to is not None:
            stmt = stmt.where(StockMovement.created_at <= flt.date_to)
        return stmt

    def list_movements(
        self,
        flt: MovementFilter | None = None,
        page: int | None = 1,
        limit: int | None = DEFAULT_PAGE_SIZE,
    ) -> MovementPage:
        flt = flt or MovementFilter()
        page, limit = clamp_page(page, limit)

        total = self.session.execute(
            self._apply_filter(select(func.count(StockMovement.id)), flt)
        ).scalar_one()

        rows = self.session.scalars(
            self._apply_filter(select(StockMovement), flt)
            .order_by(StockMovement.created_at.desc(), StockMovement.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return MovementPage(
            items=tuple(MovementRecord.from_model(r) for r in rows),
            page=page,
            limit=limit,
            total=total,
        )
