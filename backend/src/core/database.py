# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.

Billing operations rely on row-level locks (SELECT ... FOR UPDATE) on
PostgreSQL. SQLite, used for local development and tests, has no row locks,
so SQLite engines start every transaction with BEGIN IMMEDIATE, which
serializes writers database-wide and gives the same no-lost-update
guarantee.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, SQLITE_BUSY_TIMEOUT_SECONDS
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import BillingError, ConflictError

logger = logging.getLogger(__name__)


def _configure_sqlite(engine: Engine) -> None:
    """
    Take over transaction control from pysqlite.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINTs and lets two transactions read the same balance before either
    writes. We disable that and emit BEGIN IMMEDIATE ourselves.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """
    Create an engine with the settings the billing engine relies on.

    Args:
        url: SQLAlchemy database URL
        **kwargs: Extra arguments forwarded to create_engine (e.g. poolclass)

    Returns:
        Configured Engine
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", SQLITE_BUSY_TIMEOUT_SECONDS)
        engine = create_engine(url, connect_args=connect_args, echo=False, **kwargs)
        _configure_sqlite(engine)
        return engine

    kwargs.setdefault("pool_pre_ping", True)  # Verify connections before use
    if "poolclass" not in kwargs:
        kwargs.setdefault("pool_recycle", DB_POOL_RECYCLE_SECONDS)
    return create_engine(url, echo=False, **kwargs)


# Create SQLAlchemy engine
engine = create_db_engine(DATABASE_URL)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# SQLAlchemy event listeners to automatically set created_at and updated_at using the clinic timezone
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert using the clinic timezone."""
    # Import here to avoid circular import
    from utils.datetime_utils import clinic_now
    now = clinic_now()
    for column_name in ("created_at", "updated_at"):
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update using the clinic timezone."""
    from utils.datetime_utils import clinic_now
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", clinic_now())


def commit_billing_transaction(db: Session) -> None:
    """
    Commit the current billing transaction or roll it back as a whole.

    A commit can still fail after every statement succeeded (serialization
    failure, deadlock victim, SQLite busy). The payment and its
    reconciliation are then rolled back together and the caller gets a
    ConflictError to retry.

    Raises:
        ConflictError: If the transaction could not be committed
    """
    try:
        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Billing transaction could not commit, rolled back: {e}")
        raise ConflictError(details={"reason": "commit_failed"}) from e


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Any error propagating out of the request rolls the session back, so a
    failed billing operation never leaves partial state behind.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except (HTTPException, BillingError):
        # Expected business outcomes, not server errors
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI dependency injection.

    Useful for background tasks, scripts, or testing where you need manual
    session management. Commits on success, rolls back on any error.

    Yields:
        Session: SQLAlchemy database session

    Example:
        ```python
        with get_db_context() as db:
            PaymentService.apply_payment(db, invoice_id, "500.00", "cash")
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except BillingError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()
