# konfi_events/infrastructure/db/session.py

from contextlib import contextmanager
from typing import Iterator
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from konfi_events.config import settings
from konfi_events.domain.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


# -----------------------------
# Engine
# -----------------------------
def build_engine(database_url: str, **kwargs) -> Engine:
    engine = create_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        **kwargs,
    )
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def _use_immediate_transactions(engine: Engine) -> None:
    # SQLite has no SELECT ... FOR UPDATE. Taking the write lock at BEGIN
    # serializes read-count-then-insert sequences the same way the Event row
    # lock does on Postgres. pysqlite's own BEGIN handling must be off for this.

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine: Engine = build_engine(settings.database_url)


# -----------------------------
# Base Class for Models
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Session Factory
# -----------------------------
def build_session_factory(bind: Engine) -> sessionmaker:
    # Outcomes are read after commit; reloading them would open a new
    # transaction (and, on SQLite, take the write lock again).
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


SessionLocal = build_session_factory(engine)


# -----------------------------
# Unit of work
# -----------------------------
@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.
    Lock timeouts and aborted transactions surface as ConcurrencyConflictError.
    """
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.warning("Transaction aborted by the database: %s", exc.orig)
        raise ConcurrencyConflictError(
            "The event is being modified concurrently. Please retry."
        ) from exc
    except Exception:
        session.rollback()
        raise


# -----------------------------
# Context Manager (Non-FastAPI usage)
# -----------------------------
@contextmanager
def get_db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
