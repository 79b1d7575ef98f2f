"""Services for the pharma kernel (write side)."""

from pharma_kernel.services.event_bus import EventBus
from pharma_kernel.services.ledger_store import LedgerStore
from pharma_kernel.services.movement_writer import MovementWriter
from pharma_kernel.services.reference_data_service import (
    ItemInfo,
    ReferenceDataService,
    SiteInfo,
)
from pharma_kernel.services.reorder_evaluator import ReorderEvaluator
from pharma_kernel.services.retry_policy import RetryPolicy
from pharma_kernel.services.scope_lock_service import ScopeLockService
from pharma_kernel.services.sequence_service import SequenceService

__all__ = [
    "EventBus",
    "ItemInfo",
    "LedgerStore",
    "MovementWriter",
    "ReferenceDataService",
    "ReorderEvaluator",
    "RetryPolicy",
    "ScopeLockService",
    "SequenceService",
    "SiteInfo",
]
