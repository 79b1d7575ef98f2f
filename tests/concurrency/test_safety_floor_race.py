"""
Concurrent issues against one scope never push stock below safety stock.

Ten workers race to issue 5 units each from a scope holding 30 units with a
safety stock of 10.  Exactly four issues fit above the floor; the rest must
be rejected with SafetyStockViolation no matter how the threads interleave.

Runs against the SQLite file by default and against PostgreSQL when
DATABASE_URL is set.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from pharma_kernel.exceptions import SafetyStockViolation
from pharma_kernel.models.movement import StockMovement

pytestmark = [pytest.mark.slow_locks]

WORKERS = 10


def _race(writer, barrier, site_id, item_id, actor_id, quantity):
    barrier.wait()
    try:
        writer.issue_stock(site_id, item_id, quantity, actor_id)
        return "ok"
    except SafetyStockViolation:
        return "rejected"


def test_concurrent_issues_respect_safety_floor(refs, writer, stock_of, session, test_actor_id):
    site_id = refs.site()
    item_id = refs.item(reorder_point="10", safety_stock="10")
    writer.receive_stock(site_id, item_id, Decimal("30"), test_actor_id)

    barrier = Barrier(WORKERS)
    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        futures = [
            pool.submit(_race, writer, barrier, site_id, item_id, test_actor_id, Decimal("5"))
            for _ in range(WORKERS)
        ]
        outcomes = [f.result(timeout=120) for f in futures]

    assert outcomes.count("ok") == 4
    assert outcomes.count("rejected") == WORKERS - 4
    assert stock_of(site_id, item_id) == Decimal("10")
    assert session.query(StockMovement).count() == 5


def test_concurrent_transfers_between_two_sites(refs, writer, stock_of, test_actor_id):
    site_a, site_b = refs.site(), refs.site()
    item_id = refs.item(reorder_point="2", safety_stock="2")
    writer.receive_stock(site_a, item_id, Decimal("20"), test_actor_id)
    writer.receive_stock(site_b, item_id, Decimal("20"), test_actor_id)

    barrier = Barrier(WORKERS)

    def move(i):
        barrier.wait()
        source, destination = (site_a, site_b) if i % 2 == 0 else (site_b, site_a)
        try:
            writer.transfer(source, destination, item_id, Decimal("3"), test_actor_id)
            return "ok"
        except SafetyStockViolation:
            return "rejected"

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = list(pool.map(move, range(WORKERS)))

    assert stock_of(site_a, item_id) + stock_of(site_b, item_id) == Decimal("40")
    assert stock_of(site_a, item_id) >= Decimal("2")
    assert stock_of(site_b, item_id) >= Decimal("2")
    assert outcomes.count("ok") >= 1
