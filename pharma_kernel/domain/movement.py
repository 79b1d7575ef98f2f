"""
Movement -- Value types and pure arithmetic for the stock ledger.

Responsibility:
    Defines the movement vocabulary (Direction, AdjustSign, RefKind, Reason),
    the validated ``MovementDraft`` handed to the ledger store, and the pure
    functions that turn movements into stock: ``signed_quantity``,
    ``project_quantities`` and ``running_balances``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Selectors feed rows from the database into these functions; the functions
    never know where the rows came from.

Invariants enforced:
    - quantity > 0 and finite on every draft (InvalidQuantityError).
    - ADJUST carries a sign; IN and OUT never do.
    - Stock is the sum of signed quantities -- never a stored counter.

Failure modes:
    - InvalidQuantityError, MissingAdjustSignError, UnexpectedAdjustSignError.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from pharma_kernel.db.types import quantize_quantity, to_decimal
from pharma_kernel.exceptions import (
    InvalidQuantityError,
    MissingAdjustSignError,
    UnexpectedAdjustSignError,
    ValidationError,
)

ZERO = Decimal("0")


class Direction(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class AdjustSign(str, Enum):
    """Direction an ADJUST movement moves stock."""

    IN = "IN"
    OUT = "OUT"


class RefKind(str, Enum):
    """Kind of origin document a movement references."""

    PO = "PO"
    PO_RECEIPT = "PO_RECEIPT"
    ISSUE = "ISSUE"
    ADJ = "ADJ"
    XFER = "XFER"
    OTHER = "OTHER"


class Reason(str, Enum):
    PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
    CONSUMPTION = "CONSUMPTION"
    RETURN_IN = "RETURN_IN"
    RETURN_OUT = "RETURN_OUT"
    ADJUST_POS = "ADJUST_POS"
    ADJUST_NEG = "ADJUST_NEG"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    WRITE_OFF = "WRITE_OFF"
    OTHER = "OTHER"


def parse_quantity(value) -> Decimal:
    """
    Coerce a caller-supplied quantity to a strictly positive finite Decimal
    at the stored precision.  A value that rounds to zero is rejected, so
    what is checked is exactly what is written.

    Raises:
        InvalidQuantityError: If value is not numeric, not finite, or <= 0
            once rounded.
    """
    if value is None or isinstance(value, bool):
        raise InvalidQuantityError(value)
    try:
        qty = to_decimal(value)
        if qty.is_finite():
            qty = quantize_quantity(qty)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantityError(value) from None
    if not qty.is_finite() or qty <= ZERO:
        raise InvalidQuantityError(value)
    return qty


def signed_quantity(
    direction: Direction | str,
    quantity: Decimal,
    adjust_sign: AdjustSign | str | None = None,
) -> Decimal:
    """
    Signed contribution of a single movement to stock.

    IN -> +qty, OUT -> -qty, ADJUST -> +qty or -qty per its sign.
    """
    direction = Direction(direction)
    if direction is Direction.IN:
        return quantity
    if direction is Direction.OUT:
        return -quantity
    if adjust_sign is None:
        raise MissingAdjustSignError()
    return quantity if AdjustSign(adjust_sign) is AdjustSign.IN else -quantity


def project_quantities(
    rows: Iterable[tuple[str, Decimal, str | None]],
    opening: Decimal = ZERO,
) -> Decimal:
    """
    Sum ``(direction, quantity, adjust_sign)`` rows into a stock figure.

    Decimal addition is exact, so the result does not depend on row order.
    """
    total = opening
    for direction, quantity, adjust_sign in rows:
        total += signed_quantity(direction, quantity, adjust_sign)
    return total


def running_balances(
    rows: Iterable[tuple[str, Decimal, str | None]],
    opening: Decimal = ZERO,
) -> Iterator[tuple[Decimal, Decimal]]:
    """
    Yield ``(signed_quantity, balance_after)`` per row, starting from opening.
    """
    balance = opening
    for direction, quantity, adjust_sign in rows:
        signed = signed_quantity(direction, quantity, adjust_sign)
        balance += signed
        yield signed, balance


def coerce_enum(enum_cls, value, field: str):
    """``enum_cls(value)``, raising ValidationError for an unknown value."""
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {field}: {value!r}") from None


@dataclass(frozen=True)
class MovementDraft:
    """
    A validated, not-yet-persisted ledger movement.

    Construction validates the shape of the movement; reference resolution
    (site/item existence) is done by the ledger store.
    """

    site_id: UUID
    item_id: UUID
    direction: Direction
    quantity: Decimal
    reason: Reason
    ref_kind: RefKind
    adjust_sign: AdjustSign | None = None
    uom: str | None = None
    batch_label: str | None = None
    expiry_date: date | None = None
    unit_cost: Decimal | None = None
    ref_id: UUID | None = None
    ref_code: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", coerce_enum(Direction, self.direction, "direction"))
        object.__setattr__(self, "reason", coerce_enum(Reason, self.reason, "reason"))
        object.__setattr__(self, "ref_kind", coerce_enum(RefKind, self.ref_kind, "ref_kind"))
        object.__setattr__(self, "quantity", parse_quantity(self.quantity))
        if self.direction is Direction.ADJUST:
            if self.adjust_sign is None:
                raise MissingAdjustSignError()
            sign = coerce_enum(AdjustSign, self.adjust_sign, "adjust sign")
            object.__setattr__(self, "adjust_sign", sign)
        elif self.adjust_sign is not None:
            raise UnexpectedAdjustSignError(self.direction.value)
        if self.unit_cost is not None:
            object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
        if self.batch_label is not None:
            label = self.batch_label.strip()
            object.__setattr__(self, "batch_label", label or None)

    @property
    def signed_quantity(self) -> Decimal:
        return signed_quantity(self.direction, self.quantity, self.adjust_sign)

    @property
    def is_decreasing(self) -> bool:
        return self.signed_quantity < ZERO
