"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for ledger movements (``seq``, the
    tie-breaker for movements sharing a timestamp) and for generated
    purchase-order codes.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerStore and PurchaseOrderService.

Invariants enforced:
    - Monotonicity: the counter row is the sole source of truth.  The
      aggregate-max-plus-one pattern is never used.
    - Transactional: an allocation is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - NoResultFound when a counter was never initialized and the caller did
      not go through create_tables() / initialize_sequences().
    - OperationalError on lock timeout (mapped to ConcurrencyConflict by the
      movement writer).
"""

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from pharma_kernel.db.base import Base
from pharma_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        ``next_value(name)`` returns the next strictly-monotonic integer for
        a sequence.  The increment is an atomic ``UPDATE ... SET value =
        value + 1``, which takes the row lock on PostgreSQL and the database
        write lock on SQLite, so concurrent allocations serialize.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    MOVEMENT = "stock_movement"
    PURCHASE_ORDER = "purchase_order"

    WELL_KNOWN = (MOVEMENT, PURCHASE_ORDER)

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Allocate the next value for a named sequence.

        Preconditions:
            - The counter row exists (initialize_sequences()).
            - The caller is within an active transaction.
        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this sequence.
            - The counter row stays locked until the transaction ends.
        """
        self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        value = self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
        ).scalar_one()

        assert value > 0, "sequence value must be strictly positive"

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing (None if absent)."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def initialize_sequences(self) -> None:
        """
        Create the well-known counters that do not exist yet.

        Called during database setup, before any concurrent writer runs.
        """
        for name in self.WELL_KNOWN:
            existing = self._session.execute(
                select(SequenceCounter).where(SequenceCounter.name == name)
            ).scalar_one_or_none()
            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()
