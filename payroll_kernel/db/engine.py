"""
Engine and session management.

One process-wide engine, created by ``init_engine_from_url``.  PostgreSQL
runs on a pre-pinged QueuePool at READ COMMITTED; SQLite (tests and local
runs) shares a single connection through StaticPool so an in-memory
database outlives individual sessions.

Services take a ``Session`` and never commit; the caller owns the
transaction, typically through ``session_scope()``.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from payroll_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous ones.

    ``pool_size`` and ``max_overflow`` apply to PostgreSQL only.
    """
    global _engine, _session_factory
    reset_engine()

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            isolation_level="READ COMMITTED",
        )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized; call init_engine_from_url() first")
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on success, roll back and re-raise on any exception."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(register_listeners: bool = True) -> None:
    """Create every payroll table; optionally install the immutability listeners."""
    from payroll_kernel.db.base import Base
    from payroll_kernel.db.immutability import register_immutability_listeners
    from payroll_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    if register_listeners:
        register_immutability_listeners()

    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    from payroll_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
