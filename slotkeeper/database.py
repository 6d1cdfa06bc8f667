from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .config import settings

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith("postgresql")


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def _ensure_sqlite_dir(database_url: str) -> None:
    """
    Ensure the parent folder exists for SQLite file-based DB URLs like:
      sqlite:///./data/slotkeeper.sqlite
      sqlite:////absolute/path/to/db.sqlite
    """
    if not database_url.startswith("sqlite:///") or _is_sqlite_memory(database_url):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    Pragmas plus single-writer transactions for SQLite.

    pysqlite's own transaction handling is switched off so that every
    transaction starts with BEGIN IMMEDIATE: the write lock is taken before
    the first capacity read, which serializes check-then-write sequences
    across requests. SAVEPOINTs work correctly in this mode too.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=5000;")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _postgres_session_settings(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_postgres_settings(dbapi_connection, connection_record):
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("SET statement_timeout = 30000;")
            cursor.close()
        except Exception:
            # Don't block startup if provider disallows it
            logger.warning("Could not set Postgres statement_timeout")


def build_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create a configured engine.

    - Defaults to settings.resolved_database_url (DATABASE_URL or DB_PATH)
    - SQLite gets pragmas, BEGIN IMMEDIATE and check_same_thread=False
    - In-memory SQLite shares one connection (StaticPool) so every session
      sees the same database
    """
    database_url = database_url or settings.resolved_database_url

    kwargs = {"echo": False, "pool_pre_ping": True}
    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_sqlite_memory(database_url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    if _is_postgres(database_url):
        _postgres_session_settings(engine)

    return engine


# Single, shared engine for the app process (default for injection points)
engine: Engine = build_engine()


def register_models() -> None:
    """
    Central place to import ALL models so SQLModel registers them.
    """
    from .models.event import Event  # noqa: F401
    from .models.station import Station  # noqa: F401
    from .models.slot import Slot  # noqa: F401
    from .models.registration import Registration  # noqa: F401
    from .models.participant import Participant  # noqa: F401
    from .models.assignment import PotluckAssignment, ScheduleAssignment  # noqa: F401


def init_db(bind: Optional[Engine] = None, create_tables: bool = True) -> None:
    """
    Register models, then create missing tables.
    Non-destructive: create_all will not drop or alter existing tables
    (see scripts/migrate_registration_fields.py for column upgrades).
    """
    register_models()
    if create_tables:
        SQLModel.metadata.create_all(bind or engine)


def get_session(bind: Optional[Engine] = None) -> Session:
    """
    Simple session factory (OK for scripts).
    """
    return Session(bind or engine)


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Unit of work: one transaction per logical operation.

    Usage:
        with session_scope(engine) as db:
            db.add(...)

    Commits on clean exit, rolls back on any exception and re-raises.
    """
    session = Session(bind or engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
