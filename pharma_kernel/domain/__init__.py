"""
Pure domain layer.

Movement arithmetic, item policy, the safety-floor guard, reorder
evaluation, the purchase-order state machine, events and DTOs.  Nothing here
opens a session or reads the wall clock directly.
"""

from pharma_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pharma_kernel.domain.events import (
    DomainEvent,
    LowStockDetected,
    PurchaseOrderStatusChanged,
    ReplenishmentProposed,
)
from pharma_kernel.domain.guard import InvariantGuard
from pharma_kernel.domain.movement import (
    AdjustSign,
    Direction,
    MovementDraft,
    Reason,
    RefKind,
)
from pharma_kernel.domain.order_state import PurchaseOrderStatus
from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.domain.reorder import ReorderEvaluation, evaluate_reorder

__all__ = [
    "AdjustSign",
    "Clock",
    "DeterministicClock",
    "Direction",
    "DomainEvent",
    "InvariantGuard",
    "ItemPolicy",
    "LowStockDetected",
    "MovementDraft",
    "PurchaseOrderStatus",
    "PurchaseOrderStatusChanged",
    "Reason",
    "RefKind",
    "ReorderEvaluation",
    "ReplenishmentProposed",
    "SystemClock",
    "evaluate_reorder",
]
