"""
LedgerStore -- append-only persistence of stock movements.

Responsibility:
    Validates references, assigns ``seq`` and ``created_at``, and inserts
    movements.  There is no update or delete method, and the ORM listeners
    plus database triggers refuse both.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by MovementWriter inside its unit of work.  Does not lock scopes
    and does not check the safety floor; those happen in the writer before
    an append is attempted.

Invariants enforced:
    - Every movement references an existing site and item (NotFoundError).
    - Shape validation (quantity > 0, ADJUST sign) is done by MovementDraft
      before anything reaches this service.
    - append_batch is all-or-nothing: every draft is resolved before the
      first insert, and the caller's transaction covers the inserts.
    - Appended rows are flushed, so projections in the same session see them.

Audit relevance:
    Each append logs ``movement_appended`` with seq, scope, direction and
    signed quantity.
"""

from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from pharma_kernel.domain.clock import Clock
from pharma_kernel.domain.movement import MovementDraft
from pharma_kernel.logging_config import LogContext, get_logger
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.services.base import BaseService
from pharma_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService[StockMovement]):
    """
    Contract:
        ``append`` returns the id of the inserted movement.  Inserts are
        flushed but never committed.

    Non-goals:
        - Does NOT enforce safety stock (InvariantGuard).
        - Does NOT serialize concurrent writers (ScopeLockService).
    """

    def __init__(self, session: Session, clock: Clock, default_uom: str = "unit"):
        super().__init__(session)
        self._clock = clock
        self._default_uom = default_uom
        self._references = ReferenceSelector(session)
        self._sequences = SequenceService(session)

    def _resolve(self, draft: MovementDraft) -> str:
        self._references.require_site(draft.site_id)
        item = self._references.require_item(draft.item_id)
        return draft.uom or item.uom or self._default_uom

    def _insert(
        self,
        draft: MovementDraft,
        uom: str,
        actor_id: UUID,
        movement_id: UUID | None,
        counterpart_movement_id: UUID | None,
    ) -> StockMovement:
        row = StockMovement(
            id=movement_id or uuid4(),
            seq=self._sequences.next_value(SequenceService.MOVEMENT),
            site_id=draft.site_id,
            item_id=draft.item_id,
            direction=draft.direction.value,
            adjust_sign=draft.adjust_sign.value if draft.adjust_sign else None,
            quantity=draft.quantity,
            uom=uom,
            batch_label=draft.batch_label,
            expiry_date=draft.expiry_date,
            unit_cost=draft.unit_cost,
            ref_kind=draft.ref_kind.value,
            ref_id=draft.ref_id,
            ref_code=draft.ref_code,
            reason=draft.reason.value,
            notes=draft.notes,
            counterpart_movement_id=counterpart_movement_id,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(row)
        return row

    def append(
        self,
        draft: MovementDraft,
        actor_id: UUID,
        movement_id: UUID | None = None,
        counterpart_movement_id: UUID | None = None,
    ) -> UUID:
        """
        Append one movement.

        Raises:
            SiteNotFoundError / ItemNotFoundError: Unresolvable reference.
        """
        uom = self._resolve(draft)
        row = self._insert(draft, uom, actor_id, movement_id, counterpart_movement_id)
        self.session.flush()
        self._log_appended(row)
        return row.id

    def append_batch(
        self,
        drafts: Sequence[MovementDraft],
        actor_id: UUID,
        movement_ids: Sequence[UUID] | None = None,
        counterpart_ids: Sequence[UUID | None] | None = None,
    ) -> list[UUID]:
        """
        Append several movements atomically within the caller's transaction.

        ``movement_ids``/``counterpart_ids`` let multi-leg operations
        pre-assign ids so legs can reference each other without a later
        UPDATE.

        Raises:
            NotFoundError: Any draft with an unresolvable reference; nothing
                is inserted in that case.
        """
        uoms = [self._resolve(d) for d in drafts]
        movement_ids = list(movement_ids) if movement_ids else [None] * len(drafts)
        counterpart_ids = list(counterpart_ids) if counterpart_ids else [None] * len(drafts)

        rows = [
            self._insert(draft, uom, actor_id, mid, cid)
            for draft, uom, mid, cid in zip(drafts, uoms, movement_ids, counterpart_ids)
        ]
        self.session.flush()
        for row in rows:
            self._log_appended(row)
        return [row.id for row in rows]

    def _log_appended(self, row: StockMovement) -> None:
        with LogContext.bind(site_id=row.site_id, item_id=row.item_id, movement_id=row.id):
            logger.info(
                "movement_appended",
                extra={
                    "seq": row.seq,
                    "direction": row.direction,
                    "signed_quantity": row.signed_quantity,
                    "reason": row.reason,
                    "ref_kind": row.ref_kind,
                },
            )
