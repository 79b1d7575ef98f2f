"""
Purchasing Module Service (``pharma_modules.purchasing.service``).

Responsibility
--------------
Purchase-order lifecycle outside of receipts: create (DRAFT), send (SENT),
cancel (CANCELLED) and read (a single order or a filtered page).  Receiving
stock against an order is a ledger operation and belongs to
``MovementWriter.receive_purchase_order``.

Architecture position
---------------------
**Modules layer** -- thin glue over the kernel models, the pure order state
machine in ``pharma_kernel.domain.order_state`` and the kernel
SequenceService for generated codes.

Invariants enforced
-------------------
* Each public method owns its transaction boundary: one session per call,
  ``commit`` on success, ``rollback`` on any exception.
* DRAFT -> SENT -> RECEIVED, DRAFT|SENT -> CANCELLED.  Anything else raises
  InvalidOrderTransitionError.
* Status changes are compare-and-set on the stored status, so a cancel that
  races a completed receipt loses instead of overwriting RECEIVED.
* PurchaseOrderStatusChanged is published only after commit.

Failure modes
-------------
* InvalidPurchaseOrderError -- malformed or duplicate code, no lines, tax
  rate outside [0, 1], negative unit price.
* InvalidQuantityError -- a line quantity that is not > 0.
* SiteNotFoundError / ItemNotFoundError -- unresolvable reference.
* PurchaseOrderNotFoundError / InvalidOrderTransitionError.

Audit relevance
---------------
``purchase_order_created`` and ``purchase_order_status_changed`` are logged
with order code, actor and statuses.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pharma_config.schema import PurchasingSettings
from pharma_kernel.db.types import to_decimal
from pharma_kernel.domain.clock import Clock, SystemClock
from pharma_kernel.domain.dtos import PurchaseOrderFilter, PurchaseOrderPage, PurchaseOrderView
from pharma_kernel.domain.events import PurchaseOrderStatusChanged
from pharma_kernel.domain.movement import parse_quantity
from pharma_kernel.domain.order_state import (
    PurchaseOrderStatus,
    can_transition,
    format_order_code,
    normalize_order_code,
)
from pharma_kernel.exceptions import (
    InvalidOrderTransitionError,
    InvalidPurchaseOrderError,
    PurchaseOrderNotFoundError,
)
from pharma_kernel.logging_config import LogContext, get_logger
from pharma_kernel.models.purchase_order import PurchaseOrderLineModel, PurchaseOrderModel
from pharma_kernel.selectors.movement_selector import DEFAULT_PAGE_SIZE
from pharma_kernel.selectors.purchase_order_selector import PurchaseOrderSelector
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.services.event_bus import EventBus
from pharma_kernel.services.sequence_service import SequenceService
from pharma_modules.purchasing.models import OrderLineInput

logger = get_logger("modules.purchasing.service")

ZERO = Decimal("0")
ONE = Decimal("1")


def _parse_rate(value) -> Decimal:
    try:
        rate = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPurchaseOrderError(f"tax_rate must be a number, got {value!r}") from None
    if not rate.is_finite() or not (ZERO <= rate <= ONE):
        raise InvalidPurchaseOrderError(f"tax_rate must be in [0, 1], got {value}")
    return rate


class PurchaseOrderService:
    """
    Creates, sends, cancels and reads purchase orders.

    Contract
    --------
    * Every method returns a ``PurchaseOrderView`` describing committed state.

    Guarantees
    ----------
    * A failed call leaves no trace: the session is rolled back.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT receive stock (MovementWriter owns RECEIVED).
    * Does NOT amend lines of an existing order.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        settings: PurchasingSettings | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._event_bus = event_bus or EventBus()
        self._settings = settings or PurchasingSettings()

    # =========================================================================
    # Create
    # =========================================================================

    def create_order(
        self,
        site_id: UUID,
        supplier_id: UUID,
        lines: Sequence[OrderLineInput],
        actor_id: UUID,
        code: str | None = None,
        currency: str | None = None,
        tax_rate: Decimal | str | None = None,
        expected_delivery: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrderView:
        """
        Create a DRAFT order.  The code is generated as
        ``<prefix>-YYYYMMDD-NNNNNN`` when not supplied.
        """
        if not lines:
            raise InvalidPurchaseOrderError("at least one line is required")
        rate = _parse_rate(self._settings.default_tax_rate if tax_rate is None else tax_rate)
        quantities = [parse_quantity(line.quantity) for line in lines]
        if code is not None:
            normalized = normalize_order_code(code)
            if normalized is None:
                raise InvalidPurchaseOrderError(f"malformed order code: {code!r}")
            code = normalized

        session = self._session_factory()
        try:
            with LogContext.bind(operation="create_purchase_order", actor_id=actor_id):
                references = ReferenceSelector(session)
                references.require_site(site_id)

                if code is None:
                    number = SequenceService(session).next_value(SequenceService.PURCHASE_ORDER)
                    code = format_order_code(self._settings.code_prefix, self._clock.today(), number)
                elif session.execute(
                    select(PurchaseOrderModel.id).where(PurchaseOrderModel.code == code)
                ).scalar_one_or_none() is not None:
                    raise InvalidPurchaseOrderError(f"order code already exists: {code}")

                order = PurchaseOrderModel(
                    id=uuid4(),
                    code=code,
                    site_id=site_id,
                    supplier_id=supplier_id,
                    status=PurchaseOrderStatus.DRAFT.value,
                    currency=(currency or self._settings.default_currency).upper(),
                    tax_rate=rate,
                    expected_delivery=expected_delivery,
                    notes=notes,
                    created_at=self._clock.now(),
                    created_by_id=actor_id,
                )
                for line_no, (line, qty) in enumerate(zip(lines, quantities), start=1):
                    item = references.require_item(line.item_id)
                    price = to_decimal(line.unit_price) if line.unit_price is not None else item.unit_cost
                    if price < ZERO:
                        raise InvalidPurchaseOrderError(
                            f"line {line_no}: unit_price must be >= 0, got {line.unit_price}"
                        )
                    order.lines.append(
                        PurchaseOrderLineModel(
                            id=uuid4(),
                            line_no=line_no,
                            item_id=item.id,
                            description=line.description or item.name,
                            quantity=qty,
                            uom=line.uom or item.uom,
                            unit_price=price,
                            batch_label=line.batch_label,
                            expiry_date=line.expiry_date,
                            notes=line.notes,
                        )
                    )
                session.add(order)
                session.flush()

                event = PurchaseOrderStatusChanged(
                    order_id=order.id,
                    code=order.code,
                    site_id=order.site_id,
                    old_status=None,
                    new_status=order.status,
                    occurred_at=self._clock.now(),
                )
                view = PurchaseOrderView.from_model(order)
                session.commit()
                logger.info(
                    "purchase_order_created",
                    extra={
                        "order_id": str(view.id),
                        "order_code": view.code,
                        "line_count": len(view.lines),
                        "total": view.total,
                    },
                )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self._event_bus.publish(event)
        return view

    # =========================================================================
    # Transitions
    # =========================================================================

    def mark_sent(self, order_id: UUID, actor_id: UUID) -> PurchaseOrderView:
        return self._transition(order_id, PurchaseOrderStatus.SENT, actor_id)

    def cancel(self, order_id: UUID, actor_id: UUID, reason: str | None = None) -> PurchaseOrderView:
        """Cancel a DRAFT or SENT order.  ``reason`` is appended to the notes."""
        return self._transition(order_id, PurchaseOrderStatus.CANCELLED, actor_id, reason=reason)

    def _transition(
        self,
        order_id: UUID,
        target: PurchaseOrderStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrderView:
        session = self._session_factory()
        try:
            with LogContext.bind(operation=f"purchase_order_{target.value.lower()}", actor_id=actor_id):
                order = session.get(PurchaseOrderModel, order_id)
                if order is None:
                    raise PurchaseOrderNotFoundError(str(order_id))
                seen = order.status
                if not can_transition(seen, target):
                    raise InvalidOrderTransitionError(str(order_id), seen, target.value)

                now = self._clock.now()
                values = {
                    "status": target.value,
                    "updated_at": now,
                    "updated_by_id": actor_id,
                }
                if target is PurchaseOrderStatus.CANCELLED:
                    values["cancelled_at"] = now
                    if reason:
                        values["notes"] = f"{order.notes}\n{reason}" if order.notes else reason

                result = session.execute(
                    update(PurchaseOrderModel)
                    .where(PurchaseOrderModel.id == order_id, PurchaseOrderModel.status == seen)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    current = session.execute(
                        select(PurchaseOrderModel.status).where(PurchaseOrderModel.id == order_id)
                    ).scalar_one()
                    raise InvalidOrderTransitionError(str(order_id), current, target.value)

                order = session.execute(
                    select(PurchaseOrderModel)
                    .where(PurchaseOrderModel.id == order_id)
                    .execution_options(populate_existing=True)
                ).scalar_one()
                view = PurchaseOrderView.from_model(order)
                session.commit()
                logger.info(
                    "purchase_order_status_changed",
                    extra={
                        "order_id": str(order_id),
                        "order_code": view.code,
                        "old_status": seen,
                        "new_status": view.status,
                    },
                )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self._event_bus.publish(
            PurchaseOrderStatusChanged(
                order_id=view.id,
                code=view.code,
                site_id=view.site_id,
                old_status=seen,
                new_status=view.status,
                occurred_at=now,
            )
        )
        return view

    # =========================================================================
    # Read
    # =========================================================================

    def get_order(self, order_id: UUID) -> PurchaseOrderView:
        session = self._session_factory()
        try:
            order = session.get(PurchaseOrderModel, order_id)
            if order is None:
                raise PurchaseOrderNotFoundError(str(order_id))
            return PurchaseOrderView.from_model(order)
        finally:
            session.close()

    def list_orders(
        self,
        flt: PurchaseOrderFilter | None = None,
        page: int | None = 1,
        limit: int | None = DEFAULT_PAGE_SIZE,
    ) -> PurchaseOrderPage:
        """Newest first; see PurchaseOrderSelector for filter and paging rules."""
        session = self._session_factory()
        try:
            return PurchaseOrderSelector(session).list_orders(flt, page, limit)
        finally:
            session.close()

    def find_open_draft(self, site_id: UUID, supplier_id: UUID, item_id: UUID) -> PurchaseOrderView | None:
        """The oldest DRAFT order for this site and supplier that has a line
        for ``item_id``, if any."""
        session = self._session_factory()
        try:
            order = session.execute(
                select(PurchaseOrderModel)
                .join(PurchaseOrderLineModel, PurchaseOrderLineModel.order_id == PurchaseOrderModel.id)
                .where(
                    PurchaseOrderModel.site_id == site_id,
                    PurchaseOrderModel.supplier_id == supplier_id,
                    PurchaseOrderModel.status == PurchaseOrderStatus.DRAFT.value,
                    PurchaseOrderLineModel.item_id == item_id,
                )
                .order_by(PurchaseOrderModel.created_at, PurchaseOrderModel.code)
                .limit(1)
            ).scalars().first()
            return PurchaseOrderView.from_model(order) if order is not None else None
        finally:
            session.close()
