"""
Purchasing Module (``pharma_modules.purchasing``).

Responsibility
--------------
Purchase-order lifecycle (create, send, cancel) and automatic DRAFT orders
for kernel replenishment proposals.  Receipts against orders are posted by
the kernel's MovementWriter, which also moves an order to RECEIVED.

Architecture position
---------------------
**Modules layer** -- consumes kernel events; the kernel never imports this
package.
"""

from pharma_modules.purchasing.drafter import ReplenishmentDrafter
from pharma_modules.purchasing.models import OrderLineInput
from pharma_modules.purchasing.service import PurchaseOrderService

__all__ = [
    "OrderLineInput",
    "PurchaseOrderService",
    "ReplenishmentDrafter",
]
