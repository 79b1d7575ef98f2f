"""
Module: pharma_kernel.selectors.stock_selector
Responsibility: Stock projection -- the current (or as-of) quantity of a
    scope, computed by summing signed movements.  Never stored, never cached.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - stock = sum(+qty for IN, -qty for OUT, +/-qty for ADJUST per sign).
    - Summation is exact Decimal arithmetic in Python over streamed rows; the
      database is never asked for a SUM, so no backend float aggregation can
      leak in.
    - Batch/expiry filters narrow the scope; without them the figure is the
      site-wide total for the item.
"""

from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from pharma_kernel.domain.movement import ZERO, project_quantities, signed_quantity
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.selectors.base import BaseSelector

STREAM_BATCH_SIZE = 1000


@dataclass(frozen=True)
class BatchBalance:
    item_id: UUID
    batch_label: str | None
    expiry_date: date | None
    quantity: Decimal


class StockSelector(BaseSelector[StockMovement]):
    """
    Contract:
        ``project`` returns a Decimal for any (site, item) pair, 0 when the
        scope has no movements.  Identical ledgers give identical results.
    """

    def _signed_rows(
        self,
        site_id: UUID,
        item_id: UUID,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        as_of: datetime | None = None,
        before: datetime | None = None,
    ) -> Iterator[tuple[str, Decimal, str | None]]:
        stmt = select(
            StockMovement.direction,
            StockMovement.quantity,
            StockMovement.adjust_sign,
        ).where(
            StockMovement.site_id == site_id,
            StockMovement.item_id == item_id,
        )
        if batch_label is not None:
            stmt = stmt.where(StockMovement.batch_label == batch_label)
        if expiry_date is not None:
            stmt = stmt.where(StockMovement.expiry_date == expiry_date)
        if as_of is not None:
            stmt = stmt.where(StockMovement.created_at <= as_of)
        if before is not None:
            stmt = stmt.where(StockMovement.created_at < before)

        result = self.session.execute(
            stmt.execution_options(yield_per=STREAM_BATCH_SIZE)
        )
        for direction, quantity, adjust_sign in result:
            yield direction, quantity, adjust_sign

    def project(
        self,
        site_id: UUID,
        item_id: UUID,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        as_of: datetime | None = None,
    ) -> Decimal:
        """
        Stock for a scope, optionally narrowed by batch and/or expiry and
        bounded by commit timestamp (inclusive).
        """
        return project_quantities(
            self._signed_rows(site_id, item_id, batch_label, expiry_date, as_of=as_of)
        )

    def opening_balance(
        self,
        site_id: UUID,
        item_id: UUID,
        before: datetime,
        batch_label: str | None = None,
    ) -> Decimal:
        """Stock from movements strictly earlier than ``before``."""
        return project_quantities(
            self._signed_rows(site_id, item_id, batch_label, before=before)
        )

    def batch_balances(
        self,
        site_id: UUID,
        expiring_on_or_before: date,
        item_id: UUID | None = None,
    ) -> list[BatchBalance]:
        """
        Positive balances per (item, batch, expiry) for batches whose expiry
        is on or before the cutoff, ordered by expiry then item then batch.
        """
        stmt = select(
            StockMovement.item_id,
            StockMovement.batch_label,
            StockMovement.expiry_date,
            StockMovement.direction,
            StockMovement.quantity,
            StockMovement.adjust_sign,
        ).where(
            StockMovement.site_id == site_id,
            StockMovement.expiry_date.is_not(None),
            StockMovement.expiry_date <= expiring_on_or_before,
        )
        if item_id is not None:
            stmt = stmt.where(StockMovement.item_id == item_id)

        totals: dict[tuple[UUID, str | None, date], Decimal] = defaultdict(lambda: ZERO)
        result = self.session.execute(stmt.execution_options(yield_per=STREAM_BATCH_SIZE))
        for row_item, batch, expiry, direction, quantity, adjust_sign in result:
            totals[(row_item, batch, expiry)] += signed_quantity(direction, quantity, adjust_sign)

        balances = [
            BatchBalance(item_id=k[0], batch_label=k[1], expiry_date=k[2], quantity=qty)
            for k, qty in totals.items()
            if qty > ZERO
        ]
        balances.sort(key=lambda b: (b.expiry_date, str(b.item_id), b.batch_label or ""))
        return balances
