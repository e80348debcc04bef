"""
Dialect-aware insert-if-absent.

Every write in the provisioning workflow is an upsert of the "leave the
existing row alone" kind: ``INSERT ... ON CONFLICT DO NOTHING``.  Both
supported backends spell it the same way in SQL, but SQLAlchemy exposes it
through per-dialect ``insert`` constructs, so the choice is made here and
nowhere else.

Without a conflict target the clause covers every unique constraint and
primary key on the table, which is what lets a duplicate username *or* a
duplicate email surface as "no row returned" instead of an exception.

Guardrails:
    ❌ DON'T: Import ``sqlalchemy.dialects.*`` in domain code
    ✅ DO: Call ``insert_ignore(dialect_name, table)``

Tags:
    dialect, sql, upsert, portability, provisioning
"""

from __future__ import annotations

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Insert

from provisioning.core.errors import ConfigError

SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def insert_ignore(dialect_name: str, table: Table) -> Insert:
    """Return ``INSERT INTO <table> ... ON CONFLICT DO NOTHING`` for *dialect_name*.

    Raises ``ConfigError`` for dialects without an insert-if-absent form.
    """
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    raise ConfigError(
        f"Unsupported database dialect {dialect_name!r}; "
        f"expected one of {', '.join(SUPPORTED_DIALECTS)}"
    )


def dialect_of(session: Session) -> str:
    """Name of the dialect *session* is bound to."""
    return session.get_bind().dialect.name
