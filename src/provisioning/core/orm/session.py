"""SQLAlchemy engine factory, session class and pool inspection.

This module provides:

* ``create_provisioning_engine`` -- Create a SA engine from a URL with
  SQLite pragmas or pool settings applied.
* ``ProvisioningSession``        -- A pre-configured ``Session`` subclass.
* ``provisioning_session_factory`` -- ``sessionmaker`` producing it.
* ``pool_status``                -- Snapshot of the connection pool.

Tags:
    provisioning, orm, sqlalchemy, session, engine, pool

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool


def create_provisioning_engine(
    url: str = "sqlite:///provisioning.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    pool_recycle: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow, pool_timeout, pool_recycle:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        # Foreign keys are off by default in SQLite.
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout
    if pool_recycle is not None:
        pool_kwargs["pool_recycle"] = pool_recycle

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class ProvisioningSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Rows returned by a committed call stay readable after the session closes.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def provisioning_session_factory(engine: Engine) -> sessionmaker[ProvisioningSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``ProvisioningSession`` instances."""
    return sessionmaker(bind=engine, class_=ProvisioningSession, expire_on_commit=False)


@dataclass(frozen=True)
class PoolStatus:
    """Point-in-time view of an engine's connection pool."""

    pool_class: str
    size: int | None = None
    checked_in: int | None = None
    checked_out: int | None = None
    overflow: int | None = None


def pool_status(engine: Engine) -> PoolStatus:
    """Inspect *engine*'s pool.  Counters are only available for ``QueuePool``."""
    pool = engine.pool
    if isinstance(pool, QueuePool):
        return PoolStatus(
            pool_class=type(pool).__name__,
            size=pool.size(),
            checked_in=pool.checkedin(),
            checked_out=pool.checkedout(),
            overflow=pool.overflow(),
        )
    return PoolStatus(pool_class=type(pool).__name__)
