"""
ScopeLockService -- serializes check-and-write sequences per stock scope.

Responsibility:
    Before a writer projects stock and checks the safety floor it must own
    every (site, item) scope it will touch.  This service takes those scopes
    in a deterministic order and claims each with a compare-and-set version
    bump on its stock_scope_locks row.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by MovementWriter only, at the start of each attempt.

Invariants enforced:
    - Scopes are acquired in sorted (site_id, item_id) order, so two writers
      touching overlapping scope sets cannot deadlock each other.
    - PostgreSQL: ``SELECT ... FOR UPDATE`` holds the row until commit; the
      compare-and-set then always succeeds.
    - SQLite: the compare-and-set UPDATE takes the database write lock
      (waiting up to busy_timeout); if another writer committed in between,
      zero rows match and the attempt is abandoned.
    - Only one writer at a time can hold a scope between projection and
      append, so the projection the guard sees is the one the append lands on.

Failure modes:
    - ConcurrencyConflict when the version moved underneath us, when two
      writers race to create the same scope row, or when the driver reports a
      lock/serialization failure.  Retryable.
    - IntegrityError propagates unchanged for any other constraint failure
      (e.g. an unresolved site or item reference).  Not retryable.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from pharma_kernel.exceptions import ConcurrencyConflict
from pharma_kernel.logging_config import get_logger
from pharma_kernel.models.stock_scope import StockScopeLock

logger = get_logger("services.scope_lock")

Scope = tuple[UUID, UUID]


def scope_key(site_id: UUID, item_id: UUID) -> str:
    return f"{site_id}/{item_id}"


UNIQUE_VIOLATION_PGCODE = "23505"


def is_scope_insert_race(exc: IntegrityError) -> bool:
    """True when the failed insert clashed with a scope row another writer
    created, as opposed to a foreign key or other constraint failure."""
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == UNIQUE_VIOLATION_PGCODE
    message = str(orig)
    return "uq_stock_scope" in message or "UNIQUE constraint failed" in message


def ordered_scopes(scopes: Iterable[Scope]) -> list[Scope]:
    """Distinct scopes in the global acquisition order."""
    return sorted(set(scopes), key=lambda s: (str(s[0]), str(s[1])))


class ScopeLockService:

    def __init__(self, session: Session):
        self._session = session

    def acquire(self, scopes: Iterable[Scope]) -> list[Scope]:
        """
        Claim every scope for the current transaction.

        Preconditions: site and item references have been resolved.
        Postconditions: each scope row exists and its version was bumped by
            this transaction.

        Raises:
            ConcurrencyConflict: The claim lost a race; roll back and retry.
        """
        acquired = ordered_scopes(scopes)
        for site_id, item_id in acquired:
            self._claim(site_id, item_id)
        logger.debug(
            "stock_scopes_locked",
            extra={"scopes": [scope_key(s, i) for s, i in acquired]},
        )
        return acquired

    def _claim(self, site_id: UUID, item_id: UUID) -> None:
        key = scope_key(site_id, item_id)
        try:
            row = self._session.execute(
                select(StockScopeLock.id, StockScopeLock.version)
                .where(
                    StockScopeLock.site_id == site_id,
                    StockScopeLock.item_id == item_id,
                )
                .with_for_update()
            ).one_or_none()

            if row is None:
                self._session.add(StockScopeLock(site_id=site_id, item_id=item_id, version=1))
                self._session.flush()
                return

            lock_id, seen_version = row
            result = self._session.execute(
                update(StockScopeLock)
                .where(
                    StockScopeLock.id == lock_id,
                    StockScopeLock.version == seen_version,
                )
                .values(version=seen_version + 1)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            if not is_scope_insert_race(exc):
                raise
            logger.info("stock_scope_insert_race", extra={"scope": key})
            raise ConcurrencyConflict(key, "scope row created concurrently") from exc
        except OperationalError as exc:
            logger.info("stock_scope_lock_failed", extra={"scope": key, "error": str(exc.orig)})
            raise ConcurrencyConflict(key, "lock not granted") from exc

        if result.rowcount != 1:
            logger.info(
                "stock_scope_version_moved",
                extra={"scope": key, "seen_version": seen_version},
            )
            raise ConcurrencyConflict(key, f"version {seen_version} superseded")
