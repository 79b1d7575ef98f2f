"""
MovementWriter -- the only way stock changes.

Responsibility:
    Runs every stock operation as one database transaction:

        resolve references -> lock scopes -> project -> guard -> append
        -> evaluate reorder -> commit -> publish events

    Single-movement operations: receive_stock, issue_stock, adjust_stock and
    set_stock_level.  Multi-leg operations: transfer, receive_purchase_order
    and write_off_expired.

Architecture position:
    Kernel > Services -- transaction owner.  Unlike the flush-only services
    it composes (LedgerStore, ScopeLockService, SequenceService), the writer
    opens a session per attempt from a session factory and commits or rolls
    back itself.

Invariants enforced:
    - Safety floor: a decreasing operation whose projected site-wide stock
      would drop below the item's safety stock appends nothing and raises
      SafetyStockViolation.  Increasing operations are never checked.
    - Serializability per scope: projection and append happen while the
      scope is claimed (ScopeLockService), so concurrent writers can never
      both pass the guard against the same stale figure.
    - Atomicity: all legs of a transfer or receipt commit together or not at
      all.  Write-off commits the legs that passed the guard and reports the
      rest.
    - Events are published only after commit.

Failure modes:
    - ValidationError / NotFoundError: bad input, nothing written.
    - SafetyStockViolation: guard rejected, nothing written.
    - OrderClosedError / ItemNotOnOrderError: receipt rejected.
    - ConcurrencyConflict: retries exhausted (attempts attached).
    - EventDeliveryError: the write committed but a subscriber raised.

Audit relevance:
    Each operation runs inside a LogContext carrying the operation name and
    actor, so every movement_appended / safety_stock_violation /
    concurrency_conflict_retry log line is attributable.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from pharma_kernel.db.types import quantize_quantity, to_decimal
from pharma_kernel.domain.clock import Clock
from pharma_kernel.domain.dtos import (
    MovementResult,
    ReceiptInput,
    ReceiptResult,
    TransferResult,
    WriteOffLine,
    WriteOffResult,
)
from pharma_kernel.domain.events import PurchaseOrderStatusChanged
from pharma_kernel.domain.guard import InvariantGuard
from pharma_kernel.domain.movement import (
    ZERO,
    AdjustSign,
    Direction,
    MovementDraft,
    Reason,
    RefKind,
    coerce_enum,
    parse_quantity,
)
from pharma_kernel.domain.order_state import PurchaseOrderStatus
from pharma_kernel.domain.reorder import DEFAULT_DAYS_PER_MONTH
from pharma_kernel.exceptions import (
    ConcurrencyConflict,
    InvalidQuantityError,
    ItemNotOnOrderError,
    OrderClosedError,
    PurchaseOrderNotFoundError,
    SafetyStockViolation,
    SameSiteTransferError,
    ValidationError,
)
from pharma_kernel.logging_config import LogContext, get_logger
from pharma_kernel.models.purchase_order import PurchaseOrderModel
from pharma_kernel.selectors.receipt_selector import ReceiptSelector
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.selectors.stock_selector import StockSelector
from pharma_kernel.services.event_bus import EventBus
from pharma_kernel.services.ledger_store import LedgerStore
from pharma_kernel.services.reorder_evaluator import ReorderEvaluator
from pharma_kernel.services.retry_policy import RetryPolicy
from pharma_kernel.services.scope_lock_service import ScopeLockService

logger = get_logger("services.movement_writer")

T = TypeVar("T")

# SQLSTATEs for serialization failure, deadlock and lock-not-available.
_RETRYABLE_PGCODES = frozenset({"40001", "40P01", "55P03"})
_RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database table is locked", "busy")


def is_retryable_operational_error(exc: OperationalError) -> bool:
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None)
    if pgcode is not None:
        return pgcode in _RETRYABLE_PGCODES
    message = str(orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_SQLITE_MESSAGES)


@dataclass
class _UnitOfWork:
    """Collaborators bound to one attempt's session."""

    session: Session
    store: LedgerStore
    stock: StockSelector
    references: ReferenceSelector
    locks: ScopeLockService
    events: list = field(default_factory=list)


class MovementWriter:
    """
    Contract:
        Every public method is one atomic operation with automatic conflict
        retry.  Inputs are validated before any lock is taken.

    Guarantees:
        - The returned result describes committed state.
        - Events in the result have been published when the method returns.

    Non-goals:
        - Valuation (FIFO / weighted average) of stock.
        - Purchase-order lifecycle outside receipts (PurchaseOrderService).
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        clock: Clock,
        event_bus: EventBus | None = None,
        guard: InvariantGuard | None = None,
        retry_policy: RetryPolicy | None = None,
        default_uom: str = "unit",
        days_per_month: int = DEFAULT_DAYS_PER_MONTH,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._event_bus = event_bus or EventBus()
        self._guard = guard or InvariantGuard()
        self._retry = retry_policy or RetryPolicy()
        self._default_uom = default_uom
        self._days_per_month = days_per_month
        self._sleep = sleep

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # =========================================================================
    # Transaction runner
    # =========================================================================

    def _unit_of_work(self, session: Session) -> _UnitOfWork:
        return _UnitOfWork(
            session=session,
            store=LedgerStore(session, self._clock, self._default_uom),
            stock=StockSelector(session),
            references=ReferenceSelector(session),
            locks=ScopeLockService(session),
        )

    def _run_atomic(
        self,
        operation: str,
        actor_id: UUID,
        work: Callable[[_UnitOfWork], T],
    ) -> T:
        """
        Run ``work`` in a fresh session until it commits, retrying on
        ConcurrencyConflict (and retryable driver lock errors) with jittered
        backoff.  Any other exception rolls back and propagates unchanged.
        """
        with LogContext.bind(operation=operation, actor_id=actor_id):
            attempt = 0
            while True:
                attempt += 1
                session = self._session_factory()
                try:
                    uow = self._unit_of_work(session)
                    result = work(uow)
                    session.commit()
                    break
                except ConcurrencyConflict as exc:
                    session.rollback()
                    conflict = exc
                except OperationalError as exc:
                    session.rollback()
                    if not is_retryable_operational_error(exc):
                        raise
                    conflict = ConcurrencyConflict("*", f"database lock failure: {exc.orig}")
                    conflict.__cause__ = exc
                except Exception:
                    session.rollback()
                    raise
                finally:
                    session.close()

                if attempt >= self._retry.max_attempts:
                    logger.error(
                        "concurrency_conflict_exhausted",
                        extra={"scope": conflict.scope, "attempts": attempt},
                    )
                    raise ConcurrencyConflict(
                        conflict.scope, conflict.reason, attempts=attempt
                    ) from conflict
                delay = self._retry.delay_for(attempt)
                logger.warning(
                    "concurrency_conflict_retry",
                    extra={
                        "scope": conflict.scope,
                        "reason": conflict.reason,
                        "attempt": attempt,
                        "delay_seconds": round(delay, 4),
                    },
                )
                self._sleep(delay)

            logger.info(
                "stock_operation_committed",
                extra={"attempts": attempt, "event_count": len(uow.events)},
            )
            self._event_bus.publish_all(uow.events)
            return result

    def _reorder_events(self, uow: _UnitOfWork, scopes: Iterable[tuple[UUID, UUID]]) -> None:
        evaluator = ReorderEvaluator(uow.session, self._clock, self._days_per_month)
        for site_id, item_id in dict.fromkeys(scopes):
            uow.events.extend(evaluator.evaluate(site_id, item_id).events)

    # =========================================================================
    # Single-movement operations
    # =========================================================================

    def _write_single(self, uow: _UnitOfWork, draft: MovementDraft, actor_id: UUID) -> MovementResult:
        with LogContext.bind(site_id=draft.site_id, item_id=draft.item_id):
            uow.references.require_site(draft.site_id)
            policy = uow.references.get_policy(draft.item_id)
            uow.locks.acquire([(draft.site_id, draft.item_id)])

            before = uow.stock.project(draft.site_id, draft.item_id)
            projected = before + draft.signed_quantity
            if draft.is_decreasing:
                self._guard.check(draft.site_id, policy, projected, current=before)

            movement_id = uow.store.append(draft, actor_id)
            if draft.is_decreasing:
                self._reorder_events(uow, [(draft.site_id, draft.item_id)])

        return MovementResult(
            movement_id=movement_id,
            before=before,
            after=projected,
            projected=projected,
            events=tuple(uow.events),
        )

    def receive_stock(
        self,
        site_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        *,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        unit_cost: Decimal | None = None,
        reason: Reason = Reason.PURCHASE_RECEIPT,
        ref_kind: RefKind = RefKind.OTHER,
        ref_id: UUID | None = None,
        ref_code: str | None = None,
        notes: str | None = None,
        uom: str | None = None,
    ) -> MovementResult:
        """Append an IN movement.  Never guarded."""
        draft = MovementDraft(
            site_id=site_id,
            item_id=item_id,
            direction=Direction.IN,
            quantity=quantity,
            reason=reason,
            ref_kind=ref_kind,
            uom=uom,
            batch_label=batch_label,
            expiry_date=expiry_date,
            unit_cost=unit_cost,
            ref_id=ref_id,
            ref_code=ref_code,
            notes=notes,
        )
        return self._run_atomic(
            "receive_stock", actor_id, lambda uow: self._write_single(uow, draft, actor_id)
        )

    def issue_stock(
        self,
        site_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        *,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        reason: Reason = Reason.CONSUMPTION,
        ref_kind: RefKind = RefKind.ISSUE,
        ref_id: UUID | None = None,
        ref_code: str | None = None,
        notes: str | None = None,
        uom: str | None = None,
    ) -> MovementResult:
        """
        Append an OUT movement.

        Raises:
            SafetyStockViolation: projected site-wide stock < safety stock.
        """
        draft = MovementDraft(
            site_id=site_id,
            item_id=item_id,
            direction=Direction.OUT,
            quantity=quantity,
            reason=reason,
            ref_kind=ref_kind,
            uom=uom,
            batch_label=batch_label,
            expiry_date=expiry_date,
            ref_id=ref_id,
            ref_code=ref_code,
            notes=notes,
        )
        return self._run_atomic(
            "issue_stock", actor_id, lambda uow: self._write_single(uow, draft, actor_id)
        )

    def adjust_stock(
        self,
        site_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        sign: AdjustSign | str,
        actor_id: UUID,
        *,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        unit_cost: Decimal | None = None,
        reason: Reason | None = None,
        ref_id: UUID | None = None,
        ref_code: str | None = None,
        notes: str | None = None,
    ) -> MovementResult:
        """
        Append an ADJUST movement with an explicit sign.  Only the OUT sign
        is guarded.
        """
        adjust_sign = coerce_enum(AdjustSign, sign, "adjust sign") if sign is not None else None
        if reason is None:
            reason = Reason.ADJUST_NEG if adjust_sign is AdjustSign.OUT else Reason.ADJUST_POS
        draft = MovementDraft(
            site_id=site_id,
            item_id=item_id,
            direction=Direction.ADJUST,
            adjust_sign=adjust_sign,
            quantity=quantity,
            reason=reason,
            ref_kind=RefKind.ADJ,
            batch_label=batch_label,
            expiry_date=expiry_date,
            unit_cost=unit_cost,
            ref_id=ref_id,
            ref_code=ref_code,
            notes=notes,
        )
        return self._run_atomic(
            "adjust_stock", actor_id, lambda uow: self._write_single(uow, draft, actor_id)
        )

    def set_stock_level(
        self,
        site_id: UUID,
        item_id: UUID,
        target: Decimal,
        actor_id: UUID,
        *,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        unit_cost: Decimal | None = None,
        notes: str | None = None,
    ) -> MovementResult:
        """
        Count stock to ``target``: appends one ADJUST for the difference
        between the target and the current figure of the scope (narrowed by
        batch/expiry when given).  Appends nothing when they are equal.

        Raises:
            InvalidQuantityError: target is negative or not a number.
            SafetyStockViolation: the downward adjustment breaches the floor.
        """
        if target is None or isinstance(target, bool):
            raise InvalidQuantityError(target)
        try:
            target_qty = to_decimal(target)
            if target_qty.is_finite():
                target_qty = quantize_quantity(target_qty)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidQuantityError(target) from None
        if not target_qty.is_finite() or target_qty < ZERO:
            raise InvalidQuantityError(target)

        def work(uow: _UnitOfWork) -> MovementResult:
            uow.references.require_site(site_id)
            uow.references.require_item(item_id)
            uow.locks.acquire([(site_id, item_id)])

            counted_scope = uow.stock.project(
                site_id, item_id, batch_label=batch_label, expiry_date=expiry_date
            )
            delta = target_qty - counted_scope
            if delta == ZERO:
                total = uow.stock.project(site_id, item_id)
                logger.info("stock_level_unchanged", extra={"target": target_qty})
                return MovementResult(movement_id=None, before=total, after=total, projected=total)

            draft = MovementDraft(
                site_id=site_id,
                item_id=item_id,
                direction=Direction.ADJUST,
                adjust_sign=AdjustSign.IN if delta > ZERO else AdjustSign.OUT,
                quantity=abs(delta),
                reason=Reason.ADJUST_POS if delta > ZERO else Reason.ADJUST_NEG,
                ref_kind=RefKind.ADJ,
                batch_label=batch_label,
                expiry_date=expiry_date,
                unit_cost=unit_cost,
                notes=notes,
            )
            return self._write_single(uow, draft, actor_id)

        return self._run_atomic("set_stock_level", actor_id, work)

    # =========================================================================
    # Multi-leg operations
    # =========================================================================

    def transfer(
        self,
        from_site_id: UUID,
        to_site_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        *,
        batch_label: str | None = None,
        expiry_date: date | None = None,
        ref_code: str | None = None,
        notes: str | None = None,
    ) -> TransferResult:
        """
        Move stock between sites: OUT at the source (TRANSFER_OUT) and IN at
        the destination (TRANSFER_IN), both XFER, pointing at each other.

        Raises:
            SameSiteTransferError: source equals destination.
            SafetyStockViolation: source would drop below its floor; neither
                leg is written.
        """
        if from_site_id == to_site_id:
            raise SameSiteTransferError(str(from_site_id))

        out_id, in_id = uuid4(), uuid4()
        out_draft = MovementDraft(
            site_id=from_site_id,
            item_id=item_id,
            direction=Direction.OUT,
            quantity=quantity,
            reason=Reason.TRANSFER_OUT,
            ref_kind=RefKind.XFER,
            batch_label=batch_label,
            expiry_date=expiry_date,
            ref_id=in_id,
            ref_code=ref_code,
            notes=notes,
        )
        in_draft = MovementDraft(
            site_id=to_site_id,
            item_id=item_id,
            direction=Direction.IN,
            quantity=quantity,
            reason=Reason.TRANSFER_IN,
            ref_kind=RefKind.XFER,
            batch_label=batch_label,
            expiry_date=expiry_date,
            ref_id=out_id,
            ref_code=ref_code,
            notes=notes,
        )

        def work(uow: _UnitOfWork) -> TransferResult:
            uow.references.require_site(from_site_id)
            uow.references.require_site(to_site_id)
            policy = uow.references.get_policy(item_id)
            uow.locks.acquire([(from_site_id, item_id), (to_site_id, item_id)])

            source_before = uow.stock.project(from_site_id, item_id)
            destination_before = uow.stock.project(to_site_id, item_id)
            source_after = source_before - out_draft.quantity
            self._guard.check(from_site_id, policy, source_after, current=source_before)

            uow.store.append_batch(
                [out_draft, in_draft],
                actor_id,
                movement_ids=[out_id, in_id],
                counterpart_ids=[in_id, out_id],
            )
            self._reorder_events(uow, [(from_site_id, item_id)])

            return TransferResult(
                out_movement_id=out_id,
                in_movement_id=in_id,
                source_before=source_before,
                source_after=source_after,
                destination_before=destination_before,
                destination_after=destination_before + in_draft.quantity,
                events=tuple(uow.events),
            )

        return self._run_atomic("transfer", actor_id, work)

    def receive_purchase_order(
        self,
        order_id: UUID,
        receipts: Sequence[ReceiptInput],
        actor_id: UUID,
        *,
        notes: str | None = None,
    ) -> ReceiptResult:
        """
        Receive stock against a purchase order: one IN per receipt line
        (ref_kind PO, ref_id = order id, ref_code = order code).  A DRAFT
        order moves to SENT; once every line is fully received the order
        moves to RECEIVED.

        Raises:
            ValidationError: no receipt lines.
            PurchaseOrderNotFoundError: unknown order.
            OrderClosedError: order is RECEIVED or CANCELLED.
            ItemNotOnOrderError: a receipt line's item is not on the order.
        """
        if not receipts:
            raise ValidationError("At least one receipt line is required")
        for receipt in receipts:
            parse_quantity(receipt.quantity)

        def work(uow: _UnitOfWork) -> ReceiptResult:
            order = uow.session.get(PurchaseOrderModel, order_id)
            if order is None:
                raise PurchaseOrderNotFoundError(str(order_id))
            site_id = order.site_id

            # Lines are fixed at creation, so they can be checked before locking.
            unit_price_by_item = {}
            for line in order.lines:
                unit_price_by_item.setdefault(line.item_id, line.unit_price)
            for receipt in receipts:
                if receipt.item_id not in unit_price_by_item:
                    raise ItemNotOnOrderError(str(order.id), str(receipt.item_id))

            uow.locks.acquire([(site_id, r.item_id) for r in receipts])
            order = uow.session.execute(
                select(PurchaseOrderModel)
                .where(PurchaseOrderModel.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

            if order.is_closed:
                raise OrderClosedError(str(order.id), order.status)

            drafts = [
                MovementDraft(
                    site_id=site_id,
                    item_id=r.item_id,
                    direction=Direction.IN,
                    quantity=r.quantity,
                    reason=Reason.PURCHASE_RECEIPT,
                    ref_kind=RefKind.PO,
                    batch_label=r.batch_label,
                    expiry_date=r.expiry_date,
                    unit_cost=r.unit_cost if r.unit_cost is not None else unit_price_by_item[r.item_id],
                    ref_id=order.id,
                    ref_code=order.code,
                    notes=notes,
                )
                for r in receipts
            ]
            movement_ids = uow.store.append_batch(drafts, actor_id)

            old_status = order.status
            if order.status == PurchaseOrderStatus.DRAFT.value:
                self._transition_order(uow, order, PurchaseOrderStatus.SENT, actor_id)

            progress = ReceiptSelector(uow.session).progress(order.id)
            if progress.is_complete:
                order.received_at = self._clock.now()
                self._transition_order(uow, order, PurchaseOrderStatus.RECEIVED, actor_id)
            uow.session.flush()

            logger.info(
                "purchase_order_received",
                extra={
                    "order_id": str(order.id),
                    "order_code": order.code,
                    "line_count": len(drafts),
                    "old_status": old_status,
                    "new_status": order.status,
                },
            )
            return ReceiptResult(
                order_id=order.id,
                movement_ids=tuple(movement_ids),
                old_status=old_status,
                new_status=order.status,
                progress=progress,
                events=tuple(uow.events),
            )

        return self._run_atomic("receive_purchase_order", actor_id, work)

    def _transition_order(
        self,
        uow: _UnitOfWork,
        order: PurchaseOrderModel,
        new_status: PurchaseOrderStatus,
        actor_id: UUID,
    ) -> None:
        old_status = order.status
        order.status = new_status.value
        order.updated_by_id = actor_id
        order.updated_at = self._clock.now()
        uow.events.append(
            PurchaseOrderStatusChanged(
                order_id=order.id,
                code=order.code,
                site_id=order.site_id,
                old_status=old_status,
                new_status=new_status.value,
                occurred_at=self._clock.now(),
            )
        )

    def write_off_expired(
        self,
        site_id: UUID,
        cutoff: date,
        actor_id: UUID,
        *,
        item_id: UUID | None = None,
        notes: str = "Expired batch write-off",
    ) -> WriteOffResult:
        """
        Write off every (item, batch, expiry) balance at the site whose expiry
        is on or before ``cutoff`` and whose stock is positive.

        Batches are processed in expiry order against a running site-wide
        item total; a batch whose write-off would breach the floor is skipped
        and reported with its projected value.  All written batches commit
        in one transaction.
        """

        def work(uow: _UnitOfWork) -> WriteOffResult:
            uow.references.require_site(site_id)
            candidate_items = {
                b.item_id for b in uow.stock.batch_balances(site_id, cutoff, item_id=item_id)
            }
            uow.locks.acquire([(site_id, i) for i in candidate_items])

            balances = [
                b
                for b in uow.stock.batch_balances(site_id, cutoff, item_id=item_id)
                if b.item_id in candidate_items
            ]
            totals = {i: uow.stock.project(site_id, i) for i in candidate_items}
            policies = {i: uow.references.get_policy(i) for i in candidate_items}

            written: list[WriteOffLine] = []
            skipped: list[WriteOffLine] = []
            for balance in balances:
                current = totals[balance.item_id]
                projected = current - balance.quantity
                try:
                    self._guard.check(site_id, policies[balance.item_id], projected, current=current)
                except SafetyStockViolation as violation:
                    skipped.append(
                        WriteOffLine(
                            item_id=balance.item_id,
                            batch_label=balance.batch_label,
                            expiry_date=balance.expiry_date,
                            quantity=balance.quantity,
                            skipped_reason=violation.code,
                            projected=violation.projected,
                            safety_stock=violation.safety_stock,
                        )
                    )
                    continue

                movement_id = uow.store.append(
                    MovementDraft(
                        site_id=site_id,
                        item_id=balance.item_id,
                        direction=Direction.OUT,
                        quantity=balance.quantity,
                        reason=Reason.WRITE_OFF,
                        ref_kind=RefKind.OTHER,
                        batch_label=balance.batch_label,
                        expiry_date=balance.expiry_date,
                        notes=notes,
                    ),
                    actor_id,
                )
                totals[balance.item_id] = projected
                written.append(
                    WriteOffLine(
                        item_id=balance.item_id,
                        batch_label=balance.batch_label,
                        expiry_date=balance.expiry_date,
                        quantity=balance.quantity,
                        movement_id=movement_id,
                        projected=projected,
                    )
                )

            self._reorder_events(uow, [(site_id, line.item_id) for line in written])
            logger.info(
                "expired_stock_written_off",
                extra={
                    "cutoff": cutoff,
                    "written_count": len(written),
                    "skipped_count": len(skipped),
                },
            )
            return WriteOffResult(
                site_id=site_id,
                cutoff=cutoff,
                written_off=tuple(written),
                skipped=tuple(skipped),
                events=tuple(uow.events),
            )

        return self._run_atomic("write_off_expired", actor_id, work)
