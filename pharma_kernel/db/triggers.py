"""
Module: pharma_kernel.db.triggers
Responsibility: Loading, installing, and verifying the PostgreSQL triggers
    that make the stock ledger append-only at the database level.  This is the
    complement to the ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced:
    - stock_movements rows: no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on a trigger violation (surfaced by
      SQLAlchemy as InternalError / DatabaseError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.

Audit relevance:
    Raw SQL and bulk statements bypass the ORM listeners; these triggers still
    refuse to rewrite the ledger.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_stock_movement.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_stock_movement_immutability_update",
    "trg_stock_movement_immutability_delete",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the ledger immutability triggers.

    Preconditions: Tables exist and engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Functions use CREATE OR REPLACE and triggers are dropped first,
        so installation is idempotent.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the ledger immutability triggers.

    Only for schema teardown in tests and migrations.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the ledger triggers currently present in pg_trigger."""
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every ledger trigger is installed."""
    return set(get_installed_triggers(engine)) == set(ALL_TRIGGER_NAMES)
