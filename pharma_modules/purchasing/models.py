"""
Purchasing Domain Models.

Inputs accepted by the purchasing service.  Persisted orders live in the
kernel (``pharma_kernel.models.purchase_order``) because receipts post
against them.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class OrderLineInput:
    """
    A requested order line.

    ``unit_price`` defaults to the item's unit cost, ``uom`` to the item's
    uom and ``description`` to the item's name.
    """

    item_id: UUID
    quantity: Decimal
    unit_price: Decimal | None = None
    uom: str | None = None
    description: str | None = None
    batch_label: str | None = None
    expiry_date: date | None = None
    notes: str | None = None
