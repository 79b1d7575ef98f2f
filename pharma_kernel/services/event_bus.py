"""
EventBus -- in-process, synchronous delivery of post-commit domain events.

Responsibility:
    Lets outer layers (the purchasing module, notification adapters, tests)
    react to LowStockDetected, ReplenishmentProposed and
    PurchaseOrderStatusChanged without the kernel knowing about them.

Invariants enforced:
    - Publishers only call ``publish`` after their unit of work committed.
    - Handlers run in subscription order, on the publishing thread.
    - A failing handler does not stop delivery to the others; after all
      handlers ran, EventDeliveryError is raised with every failure.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable, Iterable

from pharma_kernel.exceptions import EventDeliveryError
from pharma_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

Handler = Callable[[object], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        with self._lock:
            if handler not in self._handlers[event_type]:
                self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

    def publish(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))

        event_type = type(event).__name__
        logger.info(
            "domain_event_published",
            extra={"event_type": event_type, "handler_count": len(handlers)},
        )

        failures = []
        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.error(
                    "event_handler_failed",
                    extra={
                        "event_type": event_type,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                    },
                    exc_info=True,
                )
                failures.append((handler, exc))
        if failures:
            raise EventDeliveryError(event_type, failures)

    def publish_all(self, events: Iterable[object]) -> None:
        """Publish every event in order; a failing event does not stop the
        ones after it.  Failures are raised together at the end."""
        failed: list[EventDeliveryError] = []
        for event in events:
            try:
                self.publish(event)
            except EventDeliveryError as exc:
                failed.append(exc)
        if len(failed) == 1:
            raise failed[0]
        if failed:
            raise EventDeliveryError(
                ", ".join(e.event_type for e in failed),
                [f for e in failed for f in e.failures],
            )
