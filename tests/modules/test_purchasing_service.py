"""
Tests for PurchaseOrderService.

Covers creation (generated and explicit codes, line defaults, totals),
validation, status transitions and post-commit event publication.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from pharma_config.schema import PurchasingSettings
from pharma_kernel.domain.events import PurchaseOrderStatusChanged
from pharma_kernel.exceptions import (
    InvalidOrderTransitionError,
    InvalidPurchaseOrderError,
    InvalidQuantityError,
    ItemNotFoundError,
    PurchaseOrderNotFoundError,
    SiteNotFoundError,
)
from pharma_modules.purchasing import OrderLineInput, PurchaseOrderService


@pytest.fixture
def service(session_factory, deterministic_clock, event_bus):
    return PurchaseOrderService(session_factory, deterministic_clock, event_bus)


@pytest.fixture
def catalog(refs):
    return {
        "site": refs.site(),
        "amoxicillin": refs.item("AMOX", unit_cost="2.50", uom="box"),
        "syringe": refs.item("SYR", unit_cost="0.35"),
    }


# =============================================================================
# Create
# =============================================================================


class TestCreateOrder:

    def test_generated_codes_are_sequential(self, service, catalog, test_actor_id):
        lines = [OrderLineInput(catalog["syringe"], Decimal("100"))]
        first = service.create_order(catalog["site"], uuid4(), lines, test_actor_id)
        second = service.create_order(catalog["site"], uuid4(), lines, test_actor_id)

        assert first.code == "PO-20240101-000001"
        assert second.code == "PO-20240101-000002"
        assert first.status == "DRAFT"

    def test_line_defaults_from_item(self, service, catalog, test_actor_id):
        order = service.create_order(
            catalog["site"], uuid4(), [OrderLineInput(catalog["amoxicillin"], Decimal("4"))], test_actor_id
        )
        line = order.lines[0]
        assert line.unit_price == Decimal("2.50")
        assert line.uom == "box"
        assert line.description == "Amox"
        assert line.subtotal == Decimal("10.00")

    def test_totals_with_default_tax(self, service, catalog, test_actor_id):
        order = service.create_order(
            catalog["site"],
            uuid4(),
            [
                OrderLineInput(catalog["amoxicillin"], Decimal("4")),
                OrderLineInput(catalog["syringe"], Decimal("10"), unit_price=Decimal("0.40")),
            ],
            test_actor_id,
        )
        assert order.currency == "MXN"
        assert order.tax_rate == Decimal("0.16")
        assert order.subtotal == Decimal("14.00")
        assert order.tax_amount == Decimal("2.24")
        assert order.total == Decimal("16.24")
        assert [l.line_no for l in order.lines] == [1, 2]

    def test_explicit_code_currency_and_zero_tax(self, service, catalog, test_actor_id):
        order = service.create_order(
            catalog["site"],
            uuid4(),
            [OrderLineInput(catalog["syringe"], Decimal("10"))],
            test_actor_id,
            code=" oc-2024-17 ",
            currency="usd",
            tax_rate="0",
            expected_delivery=date(2024, 2, 1),
        )
        assert order.code == "OC-2024-17"
        assert order.currency == "USD"
        assert order.tax_amount == Decimal("0")
        assert order.total == Decimal("3.50")
        assert order.expected_delivery == date(2024, 2, 1)

    def test_settings_drive_prefix_and_currency(self, session_factory, deterministic_clock, catalog, test_actor_id):
        service = PurchaseOrderService(
            session_factory,
            deterministic_clock,
            settings=PurchasingSettings(default_currency="EUR", default_tax_rate=Decimal("0.10"), code_prefix="OC"),
        )
        order = service.create_order(
            catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id
        )
        assert order.code.startswith("OC-20240101-")
        assert order.currency == "EUR"
        assert order.tax_rate == Decimal("0.10")

    def test_creation_publishes_draft_event(self, service, catalog, published, test_actor_id):
        order = service.create_order(
            catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id
        )
        assert published == [
            PurchaseOrderStatusChanged(
                order_id=order.id,
                code=order.code,
                site_id=catalog["site"],
                old_status=None,
                new_status="DRAFT",
                occurred_at=published[0].occurred_at,
            )
        ]


class TestCreateValidation:

    def test_no_lines(self, service, catalog, test_actor_id):
        with pytest.raises(InvalidPurchaseOrderError):
            service.create_order(catalog["site"], uuid4(), [], test_actor_id)

    @pytest.mark.parametrize("rate", ["-0.01", "1.01", "abc"])
    def test_tax_rate_out_of_range(self, service, catalog, rate, test_actor_id):
        with pytest.raises(InvalidPurchaseOrderError):
            service.create_order(
                catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id,
                tax_rate=rate,
            )

    @pytest.mark.parametrize("code", ["ab", "PO 1", "PO#1", ""])
    def test_malformed_code(self, service, catalog, code, test_actor_id):
        with pytest.raises(InvalidPurchaseOrderError):
            service.create_order(
                catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id,
                code=code,
            )

    def test_duplicate_code(self, service, catalog, test_actor_id):
        lines = [OrderLineInput(catalog["syringe"], Decimal("1"))]
        service.create_order(catalog["site"], uuid4(), lines, test_actor_id, code="PO-DUP")
        with pytest.raises(InvalidPurchaseOrderError, match="already exists"):
            service.create_order(catalog["site"], uuid4(), lines, test_actor_id, code="po-dup")

    def test_non_positive_quantity(self, service, catalog, test_actor_id):
        with pytest.raises(InvalidQuantityError):
            service.create_order(
                catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("0"))], test_actor_id
            )

    def test_negative_price(self, service, catalog, test_actor_id):
        with pytest.raises(InvalidPurchaseOrderError):
            service.create_order(
                catalog["site"],
                uuid4(),
                [OrderLineInput(catalog["syringe"], Decimal("1"), unit_price=Decimal("-1"))],
                test_actor_id,
            )

    def test_unknown_references(self, service, catalog, test_actor_id):
        with pytest.raises(SiteNotFoundError):
            service.create_order(uuid4(), uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id)
        with pytest.raises(ItemNotFoundError):
            service.create_order(catalog["site"], uuid4(), [OrderLineInput(uuid4(), Decimal("1"))], test_actor_id)

    def test_failed_create_leaves_no_order(self, service, catalog, published, test_actor_id):
        with pytest.raises(ItemNotFoundError):
            service.create_order(
                catalog["site"],
                uuid4(),
                [OrderLineInput(catalog["syringe"], Decimal("1")), OrderLineInput(uuid4(), Decimal("1"))],
                test_actor_id,
                code="PO-ROLLED-BACK",
            )
        assert published == []
        order = service.create_order(
            catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id,
            code="PO-ROLLED-BACK",
        )
        assert order.code == "PO-ROLLED-BACK"


# =============================================================================
# Transitions
# =============================================================================


class TestTransitions:

    @pytest.fixture
    def order(self, service, catalog, test_actor_id):
        return service.create_order(
            catalog["site"], uuid4(), [OrderLineInput(catalog["syringe"], Decimal("5"))], test_actor_id,
            notes="urgent",
        )

    def test_send_then_cancel(self, service, order, published, deterministic_clock, test_actor_id):
        published.clear()
        sent = service.mark_sent(order.id, test_actor_id)
        cancelled = service.cancel(order.id, test_actor_id, reason="supplier out of stock")

        assert sent.status == "SENT"
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at == deterministic_clock.now()
        assert cancelled.notes == "urgent\nsupplier out of stock"
        assert [(e.old_status, e.new_status) for e in published] == [("DRAFT", "SENT"), ("SENT", "CANCELLED")]

    def test_cancel_draft(self, service, order, test_actor_id):
        assert service.cancel(order.id, test_actor_id).status == "CANCELLED"

    def test_cannot_send_twice(self, service, order, test_actor_id):
        service.mark_sent(order.id, test_actor_id)
        with pytest.raises(InvalidOrderTransitionError):
            service.mark_sent(order.id, test_actor_id)

    def test_cannot_reopen_cancelled(self, service, order, test_actor_id):
        service.cancel(order.id, test_actor_id)
        with pytest.raises(InvalidOrderTransitionError):
            service.mark_sent(order.id, test_actor_id)
        with pytest.raises(InvalidOrderTransitionError):
            service.cancel(order.id, test_actor_id)
        assert service.get_order(order.id).status == "CANCELLED"

    def test_unknown_order(self, service, db_engine, test_actor_id):
        with pytest.raises(PurchaseOrderNotFoundError):
            service.mark_sent(uuid4(), test_actor_id)
        with pytest.raises(PurchaseOrderNotFoundError):
            service.get_order(uuid4())


class TestFindOpenDraft:

    def test_finds_oldest_matching_draft(self, service, catalog, deterministic_clock, test_actor_id):
        supplier = uuid4()
        lines = [OrderLineInput(catalog["syringe"], Decimal("1"))]
        first = service.create_order(catalog["site"], supplier, lines, test_actor_id)
        deterministic_clock.advance(60)
        service.create_order(catalog["site"], supplier, lines, test_actor_id)

        found = service.find_open_draft(catalog["site"], supplier, catalog["syringe"])
        assert found.id == first.id

    def test_ignores_sent_orders_and_other_items(self, service, catalog, test_actor_id):
        supplier = uuid4()
        order = service.create_order(
            catalog["site"], supplier, [OrderLineInput(catalog["syringe"], Decimal("1"))], test_actor_id
        )
        service.mark_sent(order.id, test_actor_id)

        assert service.find_open_draft(catalog["site"], supplier, catalog["syringe"]) is None
        assert service.find_open_draft(catalog["site"], supplier, catalog["amoxicillin"]) is None
