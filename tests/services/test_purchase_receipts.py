"""Receiving stock against purchase orders."""

from decimal import Decimal
from uuid import uuid4

import pytest

from pharma_kernel.domain.dtos import ReceiptInput
from pharma_kernel.domain.events import PurchaseOrderStatusChanged
from pharma_kernel.domain.movement import RefKind
from pharma_kernel.exceptions import (
    InvalidQuantityError,
    ItemNotOnOrderError,
    OrderClosedError,
    PurchaseOrderNotFoundError,
    ValidationError,
)
from pharma_kernel.models.movement import StockMovement
from pharma_kernel.selectors.receipt_selector import ReceiptSelector
from pharma_kernel.services.movement_writer import MovementWriter
from pharma_kernel.services.retry_policy import RetryPolicy
from pharma_modules.purchasing import OrderLineInput, PurchaseOrderService


@pytest.fixture
def orders(session_factory, deterministic_clock, event_bus):
    return PurchaseOrderService(session_factory, deterministic_clock, event_bus)


@pytest.fixture
def order_setup(refs, orders, test_actor_id):
    site_id = refs.site()
    gauze = refs.item("GAUZE", unit_cost="1.50")
    saline = refs.item("SALINE", unit_cost="4.00")
    order = orders.create_order(
        site_id,
        uuid4(),
        [
            OrderLineInput(item_id=gauze, quantity=Decimal("10"), unit_price=Decimal("1.25")),
            OrderLineInput(item_id=saline, quantity=Decimal("4")),
        ],
        test_actor_id,
    )
    orders.mark_sent(order.id, test_actor_id)
    return order, site_id, gauze, saline


class TestReceivePurchaseOrder:

    def test_partial_receipt_keeps_order_sent(self, order_setup, writer, session, stock_of, test_actor_id):
        order, site_id, gauze, _ = order_setup

        result = writer.receive_purchase_order(
            order.id, [ReceiptInput(item_id=gauze, quantity=Decimal("6"), batch_label="G1")], test_actor_id
        )

        assert result.old_status == result.new_status == "SENT"
        assert not result.progress.is_complete
        assert [(l.received, l.pending) for l in result.progress.lines] == [
            (Decimal("6"), Decimal("4")),
            (Decimal("0"), Decimal("4")),
        ]
        assert stock_of(site_id, gauze) == Decimal("6")

        row = session.get(StockMovement, result.movement_ids[0])
        assert row.ref_kind == RefKind.PO.value
        assert row.ref_id == order.id
        assert row.ref_code == order.code
        assert row.unit_cost == Decimal("1.25")

    def test_completing_receipt_marks_order_received(
        self, order_setup, writer, orders, published, deterministic_clock, test_actor_id
    ):
        order, _, gauze, saline = order_setup
        writer.receive_purchase_order(order.id, [ReceiptInput(gauze, Decimal("6"))], test_actor_id)
        published.clear()

        result = writer.receive_purchase_order(
            order.id,
            [ReceiptInput(gauze, Decimal("4")), ReceiptInput(saline, Decimal("4"), unit_cost=Decimal("3.90"))],
            test_actor_id,
        )

        assert result.new_status == "RECEIVED"
        assert result.progress.is_complete
        view = orders.get_order(order.id)
        assert view.status == "RECEIVED"
        assert view.received_at == deterministic_clock.now()
        assert [(e.old_status, e.new_status) for e in published] == [("SENT", "RECEIVED")]

    def test_receiving_a_draft_sends_it_first(self, refs, orders, writer, published, test_actor_id):
        site_id, item_id = refs.site(), refs.item()
        order = orders.create_order(site_id, uuid4(), [OrderLineInput(item_id, Decimal("2"))], test_actor_id)
        published.clear()

        result = writer.receive_purchase_order(order.id, [ReceiptInput(item_id, Decimal("2"))], test_actor_id)

        assert result.old_status == "DRAFT"
        assert result.new_status == "RECEIVED"
        transitions = [(e.old_status, e.new_status) for e in published if isinstance(e, PurchaseOrderStatusChanged)]
        assert transitions == [("DRAFT", "SENT"), ("SENT", "RECEIVED")]

    def test_unit_cost_defaults_to_order_line_price(self, order_setup, writer, session, test_actor_id):
        order, _, _, saline = order_setup
        result = writer.receive_purchase_order(order.id, [ReceiptInput(saline, Decimal("1"))], test_actor_id)
        assert session.get(StockMovement, result.movement_ids[0]).unit_cost == Decimal("4.00")

    def test_over_receipt_absorbed_by_last_line(self, order_setup, writer, session, test_actor_id):
        order, _, gauze, saline = order_setup
        writer.receive_purchase_order(
            order.id, [ReceiptInput(gauze, Decimal("12")), ReceiptInput(saline, Decimal("4"))], test_actor_id
        )
        progress = ReceiptSelector(session).progress(order.id)
        assert progress.lines[0].received == Decimal("12")
        assert progress.lines[0].pending == Decimal("0")


class TestReceiptRejections:

    def test_closed_order(self, order_setup, writer, orders, session, test_actor_id):
        order, _, gauze, _ = order_setup
        orders.cancel(order.id, test_actor_id)
        with pytest.raises(OrderClosedError):
            writer.receive_purchase_order(order.id, [ReceiptInput(gauze, Decimal("1"))], test_actor_id)
        assert session.query(StockMovement).count() == 0

    def test_item_not_on_order(self, order_setup, refs, writer, session, test_actor_id):
        order, _, gauze, _ = order_setup
        stranger = refs.item("STRANGER")
        with pytest.raises(ItemNotOnOrderError):
            writer.receive_purchase_order(
                order.id,
                [ReceiptInput(gauze, Decimal("1")), ReceiptInput(stranger, Decimal("1"))],
                test_actor_id,
            )
        assert session.query(StockMovement).count() == 0

    def test_unknown_item_id_rejected_without_retry(
        self, order_setup, session_factory, deterministic_clock, session, test_actor_id
    ):
        order, _, _, _ = order_setup
        sleeps = []
        writer = MovementWriter(
            session_factory,
            deterministic_clock,
            retry_policy=RetryPolicy(max_attempts=5, base_delay_seconds=0.001),
            sleep=sleeps.append,
        )
        with pytest.raises(ItemNotOnOrderError) as exc_info:
            writer.receive_purchase_order(order.id, [ReceiptInput(uuid4(), Decimal("1"))], test_actor_id)
        assert isinstance(exc_info.value, ValidationError)
        assert sleeps == []
        assert session.query(StockMovement).count() == 0

    def test_unknown_order(self, db_engine, writer, test_actor_id):
        with pytest.raises(PurchaseOrderNotFoundError):
            writer.receive_purchase_order(uuid4(), [ReceiptInput(uuid4(), Decimal("1"))], test_actor_id)

    def test_empty_receipt(self, order_setup, writer, test_actor_id):
        with pytest.raises(ValidationError):
            writer.receive_purchase_order(order_setup[0].id, [], test_actor_id)

    def test_invalid_quantity(self, order_setup, writer, test_actor_id):
        order, _, gauze, _ = order_setup
        with pytest.raises(InvalidQuantityError):
            writer.receive_purchase_order(order.id, [ReceiptInput(gauze, Decimal("0"))], test_actor_id)
