"""ORM models for the pharma kernel."""

from pharma_kernel.models.movement import StockMovement
from pharma_kernel.models.purchase_order import PurchaseOrderLineModel, PurchaseOrderModel
from pharma_kernel.models.reference import ItemModel, SiteModel
from pharma_kernel.models.stock_scope import StockScopeLock

__all__ = [
    "SiteModel",
    "ItemModel",
    "StockMovement",
    "StockScopeLock",
    "PurchaseOrderModel",
    "PurchaseOrderLineModel",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every table, including sequence_counters, is on Base.metadata."""
    import pharma_kernel.services.sequence_service  # noqa: F401
