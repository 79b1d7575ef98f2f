"""
Pharma Modules.

Thin orchestration layers over the pharma kernel.  The kernel owns the
ledger; modules own workflows around it and consume kernel events.

Modules:
- Purchasing: purchase-order lifecycle and draft replenishment orders
"""
