"""
ReplenishmentDrafter -- turns ReplenishmentProposed events into DRAFT orders.

Subscribed on the EventBus, so it only ever sees proposals whose triggering
stock write has committed.  The draft uses the item's unit cost and uom and
is addressed to the proposal's preferred supplier.

An existing DRAFT order for the same site, supplier and item absorbs
repeated proposals: a second low-stock write does not create a second draft
while the first is still unsent.
"""

from __future__ import annotations

from uuid import UUID

from pharma_kernel.domain.dtos import PurchaseOrderView
from pharma_kernel.domain.events import ReplenishmentProposed
from pharma_kernel.logging_config import get_logger
from pharma_kernel.services.event_bus import EventBus
from pharma_modules.purchasing.models import OrderLineInput
from pharma_modules.purchasing.service import PurchaseOrderService

logger = get_logger("modules.purchasing.drafter")


class ReplenishmentDrafter:

    def __init__(
        self,
        service: PurchaseOrderService,
        actor_id: UUID,
        skip_if_open_draft: bool = True,
    ):
        self._service = service
        self._actor_id = actor_id
        self._skip_if_open_draft = skip_if_open_draft

    def subscribe(self, event_bus: EventBus) -> None:
        event_bus.subscribe(ReplenishmentProposed, self.handle)

    def unsubscribe(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe(ReplenishmentProposed, self.handle)

    def handle(self, event: ReplenishmentProposed) -> PurchaseOrderView | None:
        if self._skip_if_open_draft:
            existing = self._service.find_open_draft(event.site_id, event.supplier_id, event.item_id)
            if existing is not None:
                logger.info(
                    "replenishment_draft_exists",
                    extra={
                        "order_code": existing.code,
                        "site_id": str(event.site_id),
                        "item_id": str(event.item_id),
                    },
                )
                return None

        order = self._service.create_order(
            site_id=event.site_id,
            supplier_id=event.supplier_id,
            lines=[OrderLineInput(item_id=event.item_id, quantity=event.proposed_qty)],
            actor_id=self._actor_id,
            notes=f"Replenishment proposal at stock {event.stock.normalize():f}",
        )
        logger.info(
            "replenishment_draft_created",
            extra={
                "order_code": order.code,
                "site_id": str(event.site_id),
                "item_id": str(event.item_id),
                "proposed_qty": event.proposed_qty,
            },
        )
        return order
