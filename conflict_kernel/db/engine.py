"""
Engine and session lifecycle.

One process-wide engine, configured once from a database URL.  PostgreSQL is
the production target (pooled, READ COMMITTED); SQLite URLs are accepted for
tests and local runs and skip all pool tuning.

``create_tables`` pulls in the ORM classes of the outer packages lazily so
that ``Base.metadata`` is complete, then installs the append-only listeners.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from conflict_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_READY = "Database not configured; call init_engine_from_url() first."

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _engine_options(database_url: str, **pool: Any) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 15}}
    return {"poolclass": QueuePool, "isolation_level": "READ COMMITTED", **pool}


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the engine and session factory, replacing any previous pair.

    Pool arguments only apply to server databases.
    """
    global _engine, _factory

    options = _engine_options(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )
    _engine = create_engine(database_url, echo=echo, **options)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_READY)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Audit writes open their own sessions from here, outside the caller's transaction."""
    if _factory is None:
        raise RuntimeError(_NOT_READY)
    return _factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit when the block exits cleanly, roll back and re-raise otherwise."""
    with get_session() as session:
        try:
            yield session
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        session.commit()


def _load_mappers() -> None:
    import conflict_kernel.models  # noqa: F401
    import conflict_kernel.services.sequence_service  # noqa: F401
    from conflict_modules._orm_registry import import_all_orm_models

    import_all_orm_models()


def create_tables() -> None:
    from conflict_kernel.db.base import Base
    from conflict_kernel.db.immutability import register_immutability_listeners

    _load_mappers()
    Base.metadata.create_all(get_engine())
    register_immutability_listeners()
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    from conflict_kernel.db.base import Base

    _load_mappers()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose pooled connections and forget the engine."""
    global _engine, _factory

    engine, _engine, _factory = _engine, None, None
    if engine is not None:
        engine.dispose()


atexit.register(reset_engine)
