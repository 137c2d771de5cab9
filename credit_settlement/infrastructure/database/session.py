"""Database session management with connection pooling and conflict translation"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from credit_settlement.config import settings
from credit_settlement.domain.exceptions import StaleWrite

# PostgreSQL: serialization_failure, deadlock_detected
_CONFLICT_PGCODES = {"40001", "40P01"}


def build_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections open every transaction with BEGIN IMMEDIATE so the
    conditional updates in the credit and geofence guards run one at a time.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 15)
        engine = create_engine(database_url, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
        **kwargs,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_transient_conflict(error: DBAPIError) -> bool:
    """True for lock timeouts and serialization failures that a retry can resolve"""
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode in _CONFLICT_PGCODES:
        return True
    return isinstance(error, OperationalError) and "database is locked" in str(error.orig)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.

    Transient conflicts are re-raised as StaleWrite so callers can retry the
    whole unit with fresh state.
    """
    try:
        yield db
        db.commit()
    except DBAPIError as e:
        db.rollback()
        if is_transient_conflict(e):
            raise StaleWrite(f"Transaction conflict: {e.orig}") from e
        raise
    except Exception:
        db.rollback()
        raise


def init_db(bind: Engine = engine) -> None:
    """Create missing tables"""
    from credit_settlement.infrastructure.database.models import Base

    Base.metadata.create_all(bind=bind)
