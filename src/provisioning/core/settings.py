"""Settings for the provisioning library and CLI.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The same settings object drives the engine (URL, pool), the workflow
    (conflict policy, session TTL, timeout) and logging.

    - **Pydantic validation:** Type-checked at startup, not mid-transaction
    - **Environment-driven:** Reads ``PROVISIONING_*`` env vars and ``.env``
    - **Sensible defaults:** A local SQLite file works out of the box

Examples:
    >>> from provisioning.core.settings import ProvisioningSettings
    >>> s = ProvisioningSettings(database_url="sqlite:///:memory:")
    >>> s.conflict_policy
    <ConflictPolicy.SKIP: 'skip'>

Tags:
    settings, configuration, pydantic, environment, provisioning

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from provisioning.core.enums import ConflictPolicy


class ProvisioningSettings(BaseSettings):
    """Settings for every entry point.

    Fields
    ──────
    database_url        : SQLAlchemy URL (``sqlite:///…`` or ``postgresql://…``)
    echo_sql            : Log every SQL statement
    pool_size           : Connections kept open in the pool (non-SQLite)
    max_overflow        : Extra connections allowed beyond ``pool_size``
    pool_timeout        : Seconds to wait for a free connection
    pool_recycle        : Recycle connections older than N seconds (-1 = never)
    conflict_policy     : ``skip`` or ``abort`` on duplicate username/email
    session_ttl_hours   : Lifetime of sessions created for new accounts
    transaction_timeout : Upper bound in seconds for one provisioning call
    log_level           : Structlog log level
    json_logs           : JSON logs (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_url: str = "sqlite:///provisioning.db"
    echo_sql: bool = False
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=5, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = -1

    # ── Workflow ─────────────────────────────────────────────────
    conflict_policy: ConflictPolicy = ConflictPolicy.SKIP
    session_ttl_hours: float = Field(default=24.0, gt=0)
    transaction_timeout: float | None = Field(default=None, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)


@lru_cache(maxsize=1)
def get_settings() -> ProvisioningSettings:
    """Return the process-wide settings (read once from the environment)."""
    return ProvisioningSettings()
