"""
Pytest fixtures for the pharma ledger test suite.

Provides:
- A fresh database per test (temporary SQLite file by default)
- Deterministic clock, event bus and a MovementWriter wired to both
- Reference data factories (sites, items with stocking policy)
- Structured log capture

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  When set, tests run against it
  and every table is truncated after each test; when unset, each test gets
  its own SQLite file under pytest's tmp_path.
"""

import json
import logging
import os
from collections.abc import Generator
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from pharma_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from pharma_kernel.db.immutability import register_immutability_listeners
from pharma_kernel.domain.clock import DeterministicClock
from pharma_kernel.domain.events import (
    LowStockDetected,
    PurchaseOrderStatusChanged,
    ReplenishmentProposed,
)
from pharma_kernel.domain.guard import InvariantGuard
from pharma_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pharma_kernel.selectors.stock_selector import StockSelector
from pharma_kernel.services.event_bus import EventBus
from pharma_kernel.services.movement_writer import MovementWriter
from pharma_kernel.services.reference_data_service import ReferenceDataService
from pharma_kernel.services.retry_policy import RetryPolicy

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

_TABLES_TO_TRUNCATE = (
    "stock_movements",
    "stock_scope_locks",
    "purchase_order_lines",
    "purchase_orders",
    "items",
    "sites",
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pharma_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, writer):
            writer.issue_stock(...)
            logs = captured_logs()
            assert any(r["message"] == "movement_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pharma_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line("markers", "slow_locks: mark test as potentially waiting for DB locks")


# =============================================================================
# Database
# =============================================================================


def _truncate_all(engine) -> None:
    """TRUNCATE bypasses the row-level immutability triggers."""
    with engine.begin() as conn:
        conn.execute(text(f"TRUNCATE {', '.join(_TABLES_TO_TRUNCATE)} CASCADE"))
        conn.execute(text("UPDATE sequence_counters SET current_value = 0"))


@pytest.fixture
def db_engine(tmp_path):
    """Engine with all tables created and immutability listeners active."""
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        engine = init_engine_from_url(database_url, pool_size=30, max_overflow=20, pool_timeout=10)
    else:
        engine = init_engine_from_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables()
    register_immutability_listeners()
    yield engine
    if engine.dialect.name == "postgresql":
        _truncate_all(engine)
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for reads and test setup.  Closed before teardown."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock, events, writer
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus) -> list:
    """Every domain event published on ``event_bus``, in order."""
    events: list = []
    for event_type in (LowStockDetected, ReplenishmentProposed, PurchaseOrderStatusChanged):
        event_bus.subscribe(event_type, events.append)
    return events


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=25, base_delay_seconds=0.001, max_delay_seconds=0.02)


@pytest.fixture
def writer(session_factory, deterministic_clock, event_bus, fast_retry) -> MovementWriter:
    return MovementWriter(
        session_factory,
        deterministic_clock,
        event_bus=event_bus,
        guard=InvariantGuard(allow_negative_stock=True),
        retry_policy=fast_retry,
    )


# =============================================================================
# Reference data
# =============================================================================


class ReferenceFactory:
    """Registers sites and items in their own committed transaction."""

    def __init__(self, actor_id: UUID):
        self._actor_id = actor_id
        self._counter = 0

    def _next_code(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:03d}"

    def site(self, code: str | None = None, name: str | None = None) -> UUID:
        code = code or self._next_code("SITE")
        with session_scope() as sess:
            return ReferenceDataService(sess).register_site(code, name or code, self._actor_id).id

    def item(
        self,
        code: str | None = None,
        *,
        reorder_point="0",
        safety_stock="0",
        avg_monthly_consumption="0",
        unit_cost="0",
        uom: str = "unit",
        preferred_supplier_id: UUID | None = None,
    ) -> UUID:
        code = code or self._next_code("ITEM")
        with session_scope() as sess:
            return ReferenceDataService(sess).register_item(
                code,
                code.title(),
                self._actor_id,
                uom=uom,
                unit_cost=Decimal(unit_cost),
                reorder_point=Decimal(reorder_point),
                safety_stock=Decimal(safety_stock),
                avg_monthly_consumption=Decimal(avg_monthly_consumption),
                preferred_supplier_id=preferred_supplier_id,
            ).id


@pytest.fixture
def refs(db_engine, test_actor_id) -> ReferenceFactory:
    return ReferenceFactory(test_actor_id)


@pytest.fixture
def stock_of(session_factory):
    """Project committed stock in a fresh session."""

    def _project(site_id: UUID, item_id: UUID, **filters) -> Decimal:
        sess = session_factory()
        try:
            return StockSelector(sess).project(site_id, item_id, **filters)
        finally:
            sess.close()

    return _project
