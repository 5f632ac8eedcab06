"""
Module: fuel_kernel.db.engine
Responsibility: One process-wide SQLAlchemy engine and session factory, plus
    a commit-or-rollback session scope.
Architecture position: Kernel > DB.  Only create_tables() imports models, so
    Base.metadata knows every table before it is created.

Invariants enforced:
    - PostgreSQL (psycopg driver) is the production backend, run at
      READ COMMITTED with row locks on transfer links.  SQLite is accepted
      for scripts and tests, where SELECT ... FOR UPDATE is a no-op.
    - session_scope() commits on success and rolls back on any exception.

Failure modes:
    - RuntimeError when a session or the engine is requested before
      init_engine_from_url().
"""

import atexit
import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fuel_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

DATABASE_URL_ENV = "FUEL_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite://"

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def database_url_from_env() -> str:
    """``FUEL_DATABASE_URL``, or in-memory SQLite when unset."""
    return os.environ.get(DATABASE_URL_ENV) or DEFAULT_DATABASE_URL


def init_engine_from_url(database_url: str, echo: bool = False, pool_size: int = 5) -> Engine:
    """
    Create the engine and session factory.  A second call replaces the first.

    Args:
        database_url: e.g. ``postgresql+psycopg://fuel:secret@db/fuel`` or
            ``sqlite:///fuel.db``.
        echo: log every SQL statement.
        pool_size: pooled connections kept open (PostgreSQL only).
    """
    global _engine, _sessions
    reset_engine()

    if database_url.startswith("sqlite"):
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
            pool_size=pool_size,
            pool_pre_ping=True,
            pool_recycle=1800,
            isolation_level="READ COMMITTED",
        )
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _sessions is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session that commits on normal exit and rolls back on error.

    Usage:
        with session_scope() as session:
            TransferService(session, actor_id).link(consumption_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every fuel table on the current engine."""
    from fuel_kernel.db.base import Base
    import fuel_kernel.models  # noqa: F401
    import fuel_services.orm  # noqa: F401

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _sessions
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


atexit.register(reset_engine)
