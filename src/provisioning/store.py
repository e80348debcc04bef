"""Store factory: engine, session factory and migrations from one URL.

This is the **single entry point** for opening the relational store.  The
CLI and embedding applications use ``Store.from_settings()`` or
``Store.from_url()`` rather than building engines themselves.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``sqlite``          ``sqlite:///:memory:``                       SQLite RAM
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
==================  ==========================================  ============

Usage
-----
::

    from provisioning.store import Store

    store = Store.from_url("sqlite:///provisioning.db", migrate=True)
    print(store.info)
    # ConnectionInfo(backend='sqlite', persistent=True, url='sqlite:///provisioning.db')

    with store.session() as session:
        ...
    store.dispose()
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from provisioning.core.dialect import SUPPORTED_DIALECTS
from provisioning.core.errors import InvalidConfigError, TransactionError
from provisioning.core.logging import get_logger
from provisioning.core.migrations import MigrationResult, MigrationRunner
from provisioning.core.orm.session import (
    PoolStatus,
    ProvisioningSession,
    create_provisioning_engine,
    pool_status,
    provisioning_session_factory,
)
from provisioning.core.settings import ProvisioningSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"`` or ``"postgresql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The URL with any password masked."""

    def __repr__(self) -> str:
        return (
            f"ConnectionInfo(backend={self.backend!r}, "
            f"persistent={self.persistent}, url={self.url!r})"
        )


def describe_url(url: str) -> ConnectionInfo:
    """Parse *url* into ``ConnectionInfo``; bad or unsupported URLs raise ``InvalidConfigError``."""
    try:
        parsed = make_url(url)
    except ArgumentError as exc:
        raise InvalidConfigError(
            "database_url", url, f"Invalid database URL: {exc}", cause=exc
        ) from exc
    backend = parsed.get_backend_name()
    if backend not in SUPPORTED_DIALECTS:
        raise InvalidConfigError(
            "database_url",
            parsed.render_as_string(hide_password=True),
            f"Unsupported database backend {backend!r}; "
            f"expected one of {', '.join(SUPPORTED_DIALECTS)}"
        )
    persistent = not (backend == "sqlite" and parsed.database in (None, "", ":memory:"))
    return ConnectionInfo(
        backend=backend,
        persistent=persistent,
        url=parsed.render_as_string(hide_password=True),
    )


class Store:
    """An engine plus the session factory the workflow draws from."""

    def __init__(self, engine: Engine, info: ConnectionInfo) -> None:
        self.engine = engine
        self.info = info
        self.session_factory: sessionmaker[ProvisioningSession] = provisioning_session_factory(engine)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        migrate: bool = False,
        echo: bool = False,
        pool_size: int | None = None,
        max_overflow: int | None = None,
        pool_timeout: int | None = None,
        pool_recycle: int | None = None,
    ) -> Store:
        info = describe_url(url)
        engine = create_provisioning_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )
        store = cls(engine, info)
        logger.debug("store.opened", backend=info.backend, url=info.url)
        if migrate:
            store.migrate().raise_for_errors()
        return store

    @classmethod
    def from_settings(
        cls,
        settings: ProvisioningSettings,
        *,
        database_url: str | None = None,
        migrate: bool = False,
    ) -> Store:
        return cls.from_url(
            database_url or settings.database_url,
            migrate=migrate,
            echo=settings.echo_sql,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            pool_recycle=settings.pool_recycle,
        )

    def migrator(self) -> MigrationRunner:
        return MigrationRunner(self.engine)

    def migrate(self) -> MigrationResult:
        """Apply pending migrations (idempotent)."""
        result = self.migrator().apply_pending()
        logger.info(
            "store.migrated",
            applied=len(result.applied),
            skipped=len(result.skipped),
            errors=len(result.errors),
        )
        return result

    @contextmanager
    def session(self) -> Iterator[ProvisioningSession]:
        """Session that commits on success and rolls back on error."""
        with self.session_factory() as session:
            with session.begin():
                yield session

    def ping(self) -> None:
        """Round-trip ``SELECT 1``; raises ``TransactionError`` when unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise TransactionError(f"Database unreachable: {exc}", cause=exc) from exc

    def pool_status(self) -> PoolStatus:
        return pool_status(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
