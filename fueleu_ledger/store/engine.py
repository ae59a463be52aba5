"""
SQLAlchemy engine and session utilities for the ledger store
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from fueleu_ledger.exceptions import LedgerException, LedgerStoreError

logger = logging.getLogger(__name__)

# Create declarative base
Base = declarative_base()


def create_store_engine(database_url: str, echo: bool = False, **kwargs) -> Engine:
    """
    Create an SQLAlchemy engine for the ledger store

    SQLite connections open every transaction with ``BEGIN IMMEDIATE`` so the
    banking check-then-append runs under the database write lock, which is
    SQLite's stand-in for ``SELECT ... FOR UPDATE``.

    Args:
        database_url: SQLAlchemy database URL
        echo: Echo emitted SQL
        **kwargs: Pool configuration overrides

    Returns:
        SQLAlchemy Engine
    """
    if database_url.startswith("sqlite"):
        engine_config = {
            "connect_args": {
                "check_same_thread": False,
                # Seconds a writer waits on the database lock
                "timeout": kwargs.get("busy_timeout", 30),
            },
            "echo": echo,
        }
        # In-memory databases exist per connection; share one.
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_config["poolclass"] = StaticPool
    else:
        engine_config = {
            "poolclass": QueuePool,
            "pool_size": kwargs.get("pool_size", 5),
            "max_overflow": kwargs.get("max_overflow", 10),
            "pool_timeout": kwargs.get("pool_timeout", 30),
            "pool_recycle": kwargs.get("pool_recycle", 3600),
            "pool_pre_ping": True,
            "echo": echo,
        }

    engine = create_engine(database_url, **engine_config)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            # Let SQLAlchemy emit BEGIN itself
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """
    Build a session factory for the engine

    Objects stay readable after commit so repositories can convert rows to
    domain models outside the session.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional session scope

    Commits on success and rolls back on any exception. Ledger exceptions and
    ``IntegrityError`` propagate unchanged (repositories resolve unique-key
    races themselves); any other SQLAlchemy failure surfaces as
    ``LedgerStoreError``.

    Yields:
        Database session
    """
    session = factory()

    try:
        yield session
        session.commit()
    except (LedgerException, IntegrityError):
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Store transaction rolled back: %s", exc)
        raise LedgerStoreError(
            f"Store transaction failed: {exc.__class__.__name__}",
            context={"cause": str(exc)},
        ) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine, drop_all: bool = False) -> None:
    """
    Initialize database (create all tables)

    Args:
        engine: SQLAlchemy engine
        drop_all: If True, drop all tables first
    """
    # Register table metadata
    from fueleu_ledger.store import tables  # noqa: F401

    if drop_all:
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
