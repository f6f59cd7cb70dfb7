"""
Module: kanzlei_kernel.db.engine
Responsibility: Process-wide SQLAlchemy engine and session factory, plus
    schema setup (tables and append-only triggers).
Architecture position: Kernel > DB.  Imports db/base, db/triggers and (for
    metadata registration only) models/.

Invariants enforced:
    - PostgreSQL runs READ COMMITTED with a pre-pinged pool.  Chain appends
      are serialized by ScopeLocks and the (workspace_id, seq) unique
      constraints, not by the isolation level.
    - SQLite (local use, tests) gets a busy timeout so concurrent writers
      to one file wait for each other instead of failing.
    - Sessions do not expire on commit: services return DTOs built after
      the commit without a second round-trip.

Failure modes:
    - RuntimeError when the engine is used before init_engine_from_url().
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from kanzlei_kernel.db.base import Base
from kanzlei_kernel.db.triggers import (
    install_immutability_triggers,
    uninstall_immutability_triggers,
)
from kanzlei_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    sqlite_timeout: int = 30,
) -> Engine:
    """
    Create the engine and session factory; a second call replaces both.

    Args:
        database_url: ``postgresql+psycopg2://...`` or ``sqlite:///path.db``.
        echo: Log every SQL statement.
        pool_size: Pooled connections (PostgreSQL only).
        sqlite_timeout: Seconds a SQLite writer waits on a locked file.
    """
    global _engine, _session_factory

    reset_engine()
    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend == "sqlite":
        options = {"connect_args": {"check_same_thread": False, "timeout": sqlite_timeout}}
    else:
        options = {
            "pool_size": pool_size,
            "pool_pre_ping": True,
            "pool_recycle": 1800,
            "isolation_level": "READ COMMITTED",
        }

    _engine = create_engine(url, echo=echo, **options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": backend})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for new sessions; each thread or request opens its own."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def create_tables(install_triggers: bool = True) -> None:
    """Create the kernel tables and, by default, the append-only triggers."""
    import kanzlei_kernel.models  # noqa: F401  (registers the tables)

    engine = get_engine()
    Base.metadata.create_all(engine)
    if install_triggers:
        install_immutability_triggers(engine)


def drop_tables() -> None:
    """Drop triggers and tables.  Tests only."""
    engine = get_engine()
    uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
