"""Database helpers for eventhub."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly on pysqlite.

    Join code inserts and membership inserts run inside ``begin_nested()`` so a
    constraint violation only rolls back that one row.
    """

    @event.listens_for(target, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        if conn.get_execution_options().get("isolation_level") == "AUTOCOMMIT":
            return
        conn.exec_driver_sql("BEGIN")

    return target


DATABASE_URL = f"sqlite:///{settings.database_path}"
engine = enable_sqlite_savepoints(
    create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        future=True,
    )
)
SessionLocal = scoped_session(
    sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
)


@contextmanager
def get_session():
    """Context manager returning a SQLAlchemy session."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
