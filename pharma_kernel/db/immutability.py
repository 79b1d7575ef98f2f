"""
ORM-Level Immutability Enforcement for the stock ledger (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock is never stored, only derived from the movement ledger.  If a committed
movement could be edited or deleted, every historical balance and every kardex
replay would silently change.  Corrections are new movements (ADJUST with a
sign, or a compensating IN/OUT), never rewrites.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE/DELETE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable          | Notes
----------------|-------------------------|-----------------------------------
StockMovement   | ALWAYS (from creation)  | Append-only ledger row

Purchase orders, items and sites are mutable master/workflow data and are not
protected here.

===============================================================================
USAGE
===============================================================================

    from pharma_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from pharma_kernel.exceptions import ImmutabilityViolationError
from pharma_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_stock_movement_update(mapper, connection, target):
    """Committed movements are never updated."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Committed movements are never deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only and cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register the ledger immutability listeners.

    Safe to call more than once.
    """
    from pharma_kernel.models.movement import StockMovement

    if not event.contains(StockMovement, "before_update", _check_stock_movement_update):
        event.listen(StockMovement, "before_update", _check_stock_movement_update)
    if not event.contains(StockMovement, "before_delete", _check_stock_movement_delete):
        event.listen(StockMovement, "before_delete", _check_stock_movement_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the ledger immutability listeners.

    WARNING: Only use this in tests that deliberately bypass the ORM layer
    to verify the database triggers.
    """
    from pharma_kernel.models.movement import StockMovement

    _safe_remove_listener(StockMovement, "before_update", _check_stock_movement_update)
    _safe_remove_listener(StockMovement, "before_delete", _check_stock_movement_delete)
