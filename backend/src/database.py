"""Local database session factory and configuration.

Provides connectivity to the CRM's local store, which holds the cached ERP
reference data, the key/value application settings and the customers that
orders are placed for.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import settings
from models.base import Base


def create_local_engine(database_url: str) -> Engine:
    """Create the engine for the local store.

    SQLite is the default backend; foreign keys are switched on per
    connection because SQLite leaves them off by default.
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,  # Set to True for SQL query logging
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    local_engine = create_engine(database_url, **engine_kwargs)

    if local_engine.dialect.name == "sqlite":
        @event.listens_for(local_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return local_engine


engine = create_local_engine(settings.LOCAL_DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_local_schema(bind: Engine = None) -> None:
    """Create the local cache and settings tables if they do not exist."""
    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def get_db_session(session_factory: sessionmaker = None) -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.query(ErpWarehouse).all()

    Automatically commits on success, rolls back on exception.
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
