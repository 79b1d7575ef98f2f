"""
Module: pharma_kernel.selectors.receipt_selector
Responsibility: Receipt reconciliation -- how much of each purchase-order line
    has been received, derived from the ledger rather than stored on the order.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - received(line) = sum of IN movements with ref_kind PO, ref_id = order
      id and the line's item, across all batches.
    - Lines repeating the same item draw from one received pool in line
      order: earlier lines are filled first.
    - pending = max(0, ordered - received); an order is complete when every
      line has received >= ordered.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from pharma_kernel.domain.dtos import ReceiptLineProgress, ReceiptProgress
from pharma_kernel.domain.movement import ZERO, Direction, RefKind
from pharma_kernel.exceptions import PurchaseOrderNotFoundError
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.models.purchase_order import PurchaseOrderModel
from pharma_kernel.selectors.base import BaseSelector


class ReceiptSelector(BaseSelector[StockMovement]):
    """Read side of purchase-order receipts (the receipt reconciler)."""

    def received_by_item(self, order_id: UUID) -> dict[UUID, Decimal]:
        rows = self.session.execute(
            select(StockMovement.item_id, StockMovement.quantity).where(
                StockMovement.ref_kind == RefKind.PO.value,
                StockMovement.ref_id == order_id,
                StockMovement.direction == Direction.IN.value,
            )
        )
        received: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for item_id, quantity in rows:
            received[item_id] += quantity
        return dict(received)

    def progress(self, order_id: UUID) -> ReceiptProgress:
        """
        Raises:
            PurchaseOrderNotFoundError: If the order does not exist.
        """
        order = self.session.get(PurchaseOrderModel, order_id)
        if order is None:
            raise PurchaseOrderNotFoundError(str(order_id))

        pool = self.received_by_item(order_id)
        ordered_lines = sorted(order.lines, key=lambda l: l.line_no)
        last_line_for_item = {line.item_id: line.line_no for line in ordered_lines}
        lines = []
        for line in ordered_lines:
            available = pool.get(line.item_id, ZERO)
            # The last line of an item absorbs any over-receipt.
            if last_line_for_item[line.item_id] == line.line_no:
                received = available
            else:
                received = min(available, line.quantity)
            pool[line.item_id] = available - received
            lines.append(
                ReceiptLineProgress(
                    line_no=line.line_no,
                    item_id=line.item_id,
                    ordered=line.quantity,
                    received=received,
                    pending=max(ZERO, line.quantity - received),
                )
            )
        return ReceiptProgress(order_id=order_id, lines=tuple(lines))
