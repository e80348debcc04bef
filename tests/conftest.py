"""
Shared pytest fixtures for provisioning tests.

This module provides:
- A migrated, file-backed SQLite store per test
- Session factory and engine shortcuts
- A trigger helper for injecting store faults

Usage:
    def test_something(store, session_factory):
        ...
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from provisioning.core.settings import get_settings
from provisioning.store import Store


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite file under the test's tmp dir."""
    return f"sqlite:///{tmp_path / 'provisioning.db'}"


@pytest.fixture
def store(database_url: str) -> Generator[Store, None, None]:
    """Store with all migrations applied."""
    s = Store.from_url(database_url, migrate=True)
    yield s
    s.dispose()


@pytest.fixture
def engine(store: Store):
    return store.engine


@pytest.fixture
def session_factory(store: Store):
    return store.session_factory


@pytest.fixture
def fail_session_insert_for(engine):
    """Install a trigger that aborts the session insert for one username."""

    def _install(username: str) -> None:
        with engine.begin() as conn:
            conn.exec_driver_sql(
                "CREATE TRIGGER fail_session_insert BEFORE INSERT ON sessions "
                f"WHEN NEW.account_id = (SELECT id FROM accounts WHERE username = '{username}') "
                "BEGIN SELECT RAISE(ABORT, 'session store fault'); END"
            )

    return _install


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Settings are cached per process; reset around every test."""
    for key in ("PROVISIONING_DATABASE_URL", "PROVISIONING_CONFLICT_POLICY", "PROVISIONING_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
