"""
Module: pharma_kernel.selectors.base
Responsibility: Abstract base class for all read-only selectors.  Selectors
    are the query side of the kernel: projections, replays, reconciliation and
    listings are derived from the movement ledger without mutating anything.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure functions in domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush(), and never take row locks.
    - DTO return convention: selectors return frozen dataclasses or Decimals,
      NOT raw ORM instances.
    - Session ownership: the caller owns the session and its transaction.
      Inside a write, the writer's session is passed so that projections see
      the rows it has just locked and flushed.

Audit relevance:
    There are NO stored stock figures.  Every number a selector returns is
    recomputed from stock_movements.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from pharma_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
