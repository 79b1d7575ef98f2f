"""
Purchase-order state machine and totals arithmetic.

    DRAFT --> SENT --> RECEIVED
      |         |
      +---------+--> CANCELLED

RECEIVED and CANCELLED are terminal.  A receipt against a DRAFT order first
moves it to SENT, so every RECEIVED order has passed through SENT.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import Decimal
from enum import Enum

from pharma_kernel.db.types import round_money

ZERO = Decimal("0")

PO_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{3,40}$")


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


VALID_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: frozenset(
        {PurchaseOrderStatus.SENT, PurchaseOrderStatus.CANCELLED}
    ),
    PurchaseOrderStatus.SENT: frozenset(
        {PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED}
    ),
    PurchaseOrderStatus.RECEIVED: frozenset(),
    PurchaseOrderStatus.CANCELLED: frozenset(),
}

CLOSED_STATUSES = frozenset({PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED})


def can_transition(current: PurchaseOrderStatus | str, target: PurchaseOrderStatus | str) -> bool:
    return PurchaseOrderStatus(target) in VALID_TRANSITIONS[PurchaseOrderStatus(current)]


def is_closed(status: PurchaseOrderStatus | str) -> bool:
    return PurchaseOrderStatus(status) in CLOSED_STATUSES


def normalize_order_code(code: str) -> str | None:
    """Uppercase/trim a caller-supplied code; None when it is malformed."""
    normalized = code.strip().upper()
    if not PO_CODE_PATTERN.match(normalized):
        return None
    return normalized


def format_order_code(prefix: str, day, number: int) -> str:
    """PO-YYYYMMDD-NNNNNN"""
    return f"{prefix}-{day:%Y%m%d}-{number:06d}"


def line_subtotal(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return round_money(quantity * unit_price)


def compute_totals(
    lines: Iterable[tuple[Decimal, Decimal]],
    tax_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    (subtotal, tax_amount, total) for ``(quantity, unit_price)`` lines.
    """
    subtotal = sum((line_subtotal(q, p) for q, p in lines), ZERO)
    tax_amount = round_money(subtotal * tax_rate) if tax_rate > ZERO else ZERO
    return subtotal, tax_amount, subtotal + tax_amount
