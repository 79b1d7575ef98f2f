"""Read-only selectors over the stock ledger."""

from pharma_kernel.selectors.kardex_selector import KardexSelector
from pharma_kernel.selectors.movement_selector import MovementSelector
from pharma_kernel.selectors.purchase_order_selector import PurchaseOrderSelector
from pharma_kernel.selectors.receipt_selector import ReceiptSelector
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.selectors.stock_selector import BatchBalance, StockSelector

__all__ = [
    "StockSelector",
    "BatchBalance",
    "KardexSelector",
    "ReceiptSelector",
    "MovementSelector",
    "PurchaseOrderSelector",
    "ReferenceSelector",
]
