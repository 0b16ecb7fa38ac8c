"""Database migrations and schema management."""

import logging

from sqlalchemy import inspect, text

from brew_intel.database.connection import get_engine, get_session, init_db
from brew_intel.database.models import Base

logger = logging.getLogger(__name__)


def check_schema_version() -> dict:
    """Compare the tables on disk with the models."""
    existing_tables = set(inspect(get_engine()).get_table_names())
    expected_tables = set(Base.metadata.tables.keys())

    return {
        "existing_tables": existing_tables,
        "expected_tables": expected_tables,
        "missing_tables": expected_tables - existing_tables,
        "extra_tables": existing_tables - expected_tables,
        "is_initialized": expected_tables <= existing_tables,
    }


def migrate() -> dict:
    """Create any missing tables and indexes."""
    schema_state = check_schema_version()

    if schema_state["is_initialized"]:
        return {"status": "up_to_date", "created_tables": []}

    init_db()
    created = sorted(schema_state["missing_tables"])
    logger.info(f"Created tables: {', '.join(created)}")
    return {"status": "migrated", "created_tables": created}


def vacuum_db() -> dict:
    """Reclaim the pages freed by partition drops.

    VACUUM cannot run inside a transaction, so it goes through an
    autocommit connection. Returns the page counts before and after.
    """
    engine = get_engine()
    with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
        before = conn.execute(text("PRAGMA page_count")).scalar()
        conn.execute(text("VACUUM"))
        after = conn.execute(text("PRAGMA page_count")).scalar()

    logger.info(f"Vacuumed database: {before} -> {after} pages")
    return {"pages_before": before, "pages_after": after}


def get_db_stats() -> dict:
    """Get row counts for every table."""
    with get_session() as session:
        return {
            table_name: session.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar()
            for table_name in Base.metadata.tables.keys()
        }
