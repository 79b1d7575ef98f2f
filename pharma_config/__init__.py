"""
pharma_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    It merges the packaged defaults, an optional YAML override
    (explicit path, else the ``PHARMA_LEDGER_CONFIG`` environment variable)
    and ``DATABASE_URL``, and returns a frozen ``LedgerConfig``.

Architecture position:
    This package sits above ``pharma_kernel`` and below
    ``pharma_modules``.  The kernel MUST NEVER import from
    ``pharma_config``; ``pharma_config.bridges`` turns a LedgerConfig
    into kernel constructor arguments.

Audit relevance:
    Every call emits a ``PHARMA_CONFIG_TRACE`` log entry carrying the source
    and checksum of the configuration in effect.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pharma_config.loader import load_config
from pharma_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LedgerSettings,
    PurchasingSettings,
    RetrySettings,
)

_logger = logging.getLogger("pharma_kernel.config")

CONFIG_PATH_ENV = "PHARMA_LEDGER_CONFIG"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """
    The ONLY public configuration entrypoint.

    Raises:
        FileNotFoundError: if the override file does not exist.
        ValueError: on unknown keys or out-of-range values.
    """
    if config_path is None and os.environ.get(CONFIG_PATH_ENV):
        config_path = os.environ[CONFIG_PATH_ENV]
    config = load_config(
        Path(config_path) if config_path is not None else None,
        environ=os.environ,
    )
    _logger.info(
        "PHARMA_CONFIG_TRACE",
        extra={
            "config_source": config.source,
            "config_checksum": config.checksum,
            "allow_negative_stock": config.ledger.allow_negative_stock,
            "retry_max_attempts": config.retry.max_attempts,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "LedgerConfig",
    "DatabaseConfig",
    "LedgerSettings",
    "RetrySettings",
    "PurchasingSettings",
]
