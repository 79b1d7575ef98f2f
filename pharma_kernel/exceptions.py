"""
Typed Exception Hierarchy for the Pharma Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PharmaKernelError:

    PharmaKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- MissingAdjustSignError
    |   +-- UnexpectedAdjustSignError
    |   +-- SameSiteTransferError
    |   +-- ItemNotOnOrderError
    |   +-- InvalidPolicyError
    |   +-- InvalidPurchaseOrderError
    |   +-- NotFoundError
    |       +-- SiteNotFoundError
    |       +-- ItemNotFoundError
    |       +-- PurchaseOrderNotFoundError
    |       +-- MovementNotFoundError
    |
    +-- SafetyStockViolation
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflict
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PurchaseOrderError
    |   +-- InvalidOrderTransitionError
    |   +-- OrderClosedError
    |
    +-- EventDeliveryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_QUANTITY            | Quantity <= 0 or not a number
                | MISSING_ADJUST_SIGN         | ADJUST movement without a sign
                | UNEXPECTED_ADJUST_SIGN      | Sign given on an IN/OUT movement
                | SAME_SITE_TRANSFER          | Transfer source equals destination
                | ITEM_NOT_ON_ORDER           | Receipt line for an item not ordered
                | INVALID_POLICY              | reorder_point < safety_stock, negatives
                | INVALID_PURCHASE_ORDER      | No lines, bad tax rate, bad code
----------------|-----------------------------|-----------------------------------------
Not found       | SITE_NOT_FOUND              | Site reference does not resolve
                | ITEM_NOT_FOUND              | Item reference does not resolve
                | PURCHASE_ORDER_NOT_FOUND    | Order id does not exist
                | MOVEMENT_NOT_FOUND          | Movement id does not exist
----------------|-----------------------------|-----------------------------------------
Stock           | SAFETY_STOCK_VIOLATION      | Decreasing op would breach the floor
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Scoped check-and-write lost a race
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE on a committed movement
----------------|-----------------------------|-----------------------------------------
Purchasing      | INVALID_ORDER_TRANSITION    | Status change not in the state machine
                | ORDER_CLOSED                | Receipt against RECEIVED/CANCELLED order
----------------|-----------------------------|-----------------------------------------
Events          | EVENT_DELIVERY_FAILED       | A subscriber raised after commit

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        writer.issue_stock(...)
    except SafetyStockViolation as e:
        return {"error": e.code, "projected": e.projected, "floor": e.safety_stock}
    except ConcurrencyConflict:
        # Retries already exhausted inside the writer; transient for the caller.
        ...

NotFoundError is a ValidationError: an unresolvable reference is malformed
input, so callers catching ValidationError also see missing references.
"""

from decimal import Decimal


class PharmaKernelError(Exception):
    """
    Base exception for all pharma kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PHARMA_KERNEL_ERROR"


# Validation exceptions


class ValidationError(PharmaKernelError):
    """Malformed or missing required input. Raised before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = str(quantity)
        super().__init__(f"Quantity must be > 0, got {quantity}")


class MissingAdjustSignError(ValidationError):
    """ADJUST movement submitted without a sign."""

    code: str = "MISSING_ADJUST_SIGN"

    def __init__(self):
        super().__init__("adjust_sign is required for ADJUST movements")


class UnexpectedAdjustSignError(ValidationError):
    """A sign was supplied on a movement that is not an ADJUST."""

    code: str = "UNEXPECTED_ADJUST_SIGN"

    def __init__(self, direction: str):
        self.direction = direction
        super().__init__(f"adjust_sign is only valid for ADJUST movements, not {direction}")


class SameSiteTransferError(ValidationError):
    """Transfer source and destination are the same site."""

    code: str = "SAME_SITE_TRANSFER"

    def __init__(self, site_id: str):
        self.site_id = site_id
        super().__init__(f"Transfer source and destination cannot both be {site_id}")


class ItemNotOnOrderError(ValidationError):
    """Receipt submitted for an item that is not a line on the order."""

    code: str = "ITEM_NOT_ON_ORDER"

    def __init__(self, order_id: str, item_id: str):
        self.order_id = order_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not a line on purchase order {order_id}")


class InvalidPolicyError(ValidationError):
    """Item policy is inconsistent."""

    code: str = "INVALID_POLICY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid item policy: {reason}")


class InvalidPurchaseOrderError(ValidationError):
    """Purchase order header or lines are malformed."""

    code: str = "INVALID_PURCHASE_ORDER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid purchase order: {reason}")


class NotFoundError(ValidationError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"


class SiteNotFoundError(NotFoundError):
    code: str = "SITE_NOT_FOUND"

    def __init__(self, site_id: str):
        self.site_id = site_id
        super().__init__(f"Site not found: {site_id}")


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Purchase order not found: {order_id}")


class MovementNotFoundError(NotFoundError):
    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


# Stock invariant exceptions


class SafetyStockViolation(PharmaKernelError):
    """
    A stock-decreasing operation would leave the scope below its floor.

    Nothing is appended when this is raised.  The projected value and the
    floor that would have been breached are carried as attributes.
    """

    code: str = "SAFETY_STOCK_VIOLATION"

    def __init__(
        self,
        site_id: str,
        item_id: str,
        current: Decimal,
        projected: Decimal,
        safety_stock: Decimal,
    ):
        self.site_id = site_id
        self.item_id = item_id
        self.current = current
        self.projected = projected
        self.safety_stock = safety_stock
        super().__init__(
            f"Projected stock {projected} for item {item_id} at site {site_id} "
            f"would fall below safety stock {safety_stock}"
        )


# Concurrency exceptions


class ConcurrencyError(PharmaKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflict(ConcurrencyError):
    """
    The scoped check-and-write lost a race with a concurrent commit.

    Safe to retry.  The movement writer retries automatically and raises
    this to the caller only once its attempts are exhausted.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, scope: str, reason: str, attempts: int = 1):
        self.scope = scope
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of stock scope {scope} ({reason}) "
            f"after {attempts} attempt(s)"
        )


# Immutability exceptions


class ImmutabilityError(PharmaKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a committed ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Purchase-order exceptions


class PurchaseOrderError(PharmaKernelError):
    """Base exception for purchase-order lifecycle errors."""

    code: str = "PURCHASE_ORDER_ERROR"


class InvalidOrderTransitionError(PurchaseOrderError):
    """Requested status change is not allowed by the order state machine."""

    code: str = "INVALID_ORDER_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Purchase order {order_id} cannot move from {from_status} to {to_status}"
        )


class OrderClosedError(PurchaseOrderError):
    """Receipt attempted against an order that is RECEIVED or CANCELLED."""

    code: str = "ORDER_CLOSED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Purchase order {order_id} is closed (status={status})")


# Event delivery exceptions


class EventDeliveryError(PharmaKernelError):
    """
    One or more subscribers raised while handling a published event.

    The operation that produced the event has already committed.  Every
    subscriber was still invoked; ``failures`` holds (handler, exception)
    pairs in delivery order.
    """

    code: str = "EVENT_DELIVERY_FAILED"

    def __init__(self, event_type: str, failures: list):
        self.event_type = event_type
        self.failures = failures
        names = ", ".join(getattr(h, "__qualname__", repr(h)) for h, _ in failures)
        super().__init__(f"{len(failures)} handler(s) failed for {event_type}: {names}")
