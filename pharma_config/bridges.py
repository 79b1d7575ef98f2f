"""
Config -> Kernel bridges.

Functions that turn a LedgerConfig into kernel constructor arguments.  They
live in pharma_config (the producer) because the kernel must NEVER import
pharma_config.

Usage:
    from pharma_config import get_active_config
    from pharma_config.bridges import build_movement_writer, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    writer = build_movement_writer(config, get_session_factory(), SystemClock())
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from pharma_config.schema import LedgerConfig
from pharma_kernel.db.engine import init_engine_from_url
from pharma_kernel.db.immutability import register_immutability_listeners
from pharma_kernel.domain.clock import Clock
from pharma_kernel.domain.guard import InvariantGuard
from pharma_kernel.services.event_bus import EventBus
from pharma_kernel.services.movement_writer import MovementWriter
from pharma_kernel.services.retry_policy import RetryPolicy


def init_engine_from_config(config: LedgerConfig) -> Engine:
    """Initialize the kernel engine from the database section and register
    the ORM immutability listeners."""
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )
    register_immutability_listeners()
    return engine


def build_guard(config: LedgerConfig) -> InvariantGuard:
    return InvariantGuard(allow_negative_stock=config.ledger.allow_negative_stock)


def build_retry_policy(config: LedgerConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay_seconds=config.retry.base_delay_seconds,
        max_delay_seconds=config.retry.max_delay_seconds,
    )


def build_movement_writer(
    config: LedgerConfig,
    session_factory,
    clock: Clock,
    event_bus: EventBus | None = None,
) -> MovementWriter:
    """Build a MovementWriter whose guard, retry policy, default uom and
    consumption month all come from ``config``."""
    return MovementWriter(
        session_factory,
        clock,
        event_bus=event_bus,
        guard=build_guard(config),
        retry_policy=build_retry_policy(config),
        default_uom=config.ledger.default_uom,
        days_per_month=config.ledger.days_per_month,
    )
