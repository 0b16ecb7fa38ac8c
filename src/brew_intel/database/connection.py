"""Database connection and session management."""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from brew_intel.config import DatabaseConfig, get_config
from brew_intel.database.models import Base

# Global engine instance
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _configure_sqlite(engine: Engine, db_config: DatabaseConfig) -> None:
    """Apply per-connection pragmas so worker threads can write side by side."""

    @event.listens_for(engine, "connect")
    def set_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode={db_config.journal_mode}")
        cursor.execute(f"PRAGMA busy_timeout={int(db_config.busy_timeout * 1000)}")
        cursor.close()


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        db_config = get_config().database
        db_path = Path(db_config.path)

        # Ensure the parent directory exists
        db_path.parent.mkdir(parents=True, exist_ok=True)

        # Worker pools share the engine across threads
        _engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={
                "check_same_thread": False,
                "timeout": db_config.busy_timeout,
            },
        )
        _configure_sqlite(_engine, db_config)

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session as a context manager.

    The transaction commits when the block exits cleanly, so anything done
    after the ``with`` block sees durably written rows.
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create every table and index that does not exist yet."""
    Base.metadata.create_all(bind=get_engine())


def close_db() -> None:
    """Dispose of the engine; the next session reconnects from config."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionLocal = None
