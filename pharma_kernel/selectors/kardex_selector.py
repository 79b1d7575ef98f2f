"""
Module: pharma_kernel.selectors.kardex_selector
Responsibility: Balance replay (kardex) -- the ordered movement history of a
    scope with the running balance after each movement.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Order is (created_at, seq): timestamp first, insertion sequence as the
      tie-breaker, so two movements in the same instant replay in the order
      they were appended.
    - With ``date_from`` the running balance starts at the opening balance
      (all movements strictly before date_from).  The last row's balance
      therefore always equals ``project(as_of=date_to)`` for the same filters.
    - Rows are streamed; a long history is never materialized at once.
"""

from collections.abc import Iterator
from datetime import datetime
from itertools import tee
from uuid import UUID

from sqlalchemy import select

from pharma_kernel.domain.dtos import KardexRow
from pharma_kernel.domain.movement import ZERO, running_balances
from pharma_kernel.logging_config import LogContext, get_logger
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.selectors.base import BaseSelector
from pharma_kernel.selectors.stock_selector import STREAM_BATCH_SIZE, StockSelector

logger = get_logger("selectors.kardex")


class KardexSelector(BaseSelector[StockMovement]):

    def replay(
        self,
        site_id: UUID,
        item_id: UUID,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        batch_label: str | None = None,
    ) -> Iterator[KardexRow]:
        """
        Lazily yield KardexRow for each movement in the window.

        Both bounds are inclusive on created_at.
        """
        balance = ZERO
        if date_from is not None:
            balance = StockSelector(self.session).opening_balance(
                site_id, item_id, before=date_from, batch_label=batch_label
            )

        stmt = select(StockMovement).where(
            StockMovement.site_id == site_id,
            StockMovement.item_id == item_id,
        )
        if batch_label is not None:
            stmt = stmt.where(StockMovement.batch_label == batch_label)
        if date_from is not None:
            stmt = stmt.where(StockMovement.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(StockMovement.created_at <= date_to)
        stmt = stmt.order_by(StockMovement.created_at, StockMovement.seq)

        result = self.session.scalars(stmt.execution_options(yield_per=STREAM_BATCH_SIZE))
        rows, for_balances = tee(result)
        balances = running_balances(
            ((r.direction, r.quantity, r.adjust_sign) for r in for_balances),
            opening=balance,
        )
        count, closing = 0, balance
        for row, (signed, balance_after) in zip(rows, balances):
            count, closing = count + 1, balance_after
            yield KardexRow(
                movement_id=row.id,
                seq=row.seq,
                created_at=row.created_at,
                direction=row.direction,
                adjust_sign=row.adjust_sign,
                quantity=row.quantity,
                signed_quantity=signed,
                balance_after=balance_after,
                batch_label=row.batch_label,
                expiry_date=row.expiry_date,
                reason=row.reason,
                ref_kind=row.ref_kind,
                ref_code=row.ref_code,
            )

        with LogContext.bind(site_id=site_id, item_id=item_id):
            logger.debug("kardex_replayed", extra={"rows": count, "closing_balance": closing})
