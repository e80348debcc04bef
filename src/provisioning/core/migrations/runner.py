"""SQL migration runner.

Reads ``NNN_name.sql`` files from the schema directory for the engine's
dialect, tracks applied migrations in the ``_migrations`` table, and
applies pending ones in filename order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection, Engine

from provisioning.core.errors import MigrationError
from provisioning.core.logging import get_logger
from provisioning.core.orm.tables import MigrationTable

logger = get_logger(__name__)

# Default schema root - adjacent to this module's parent
_SCHEMA_ROOT = Path(__file__).resolve().parent.parent / "schema"

_VERSION_RE = re.compile(r"^(\d+)_")
_migrations = MigrationTable.__table__


@dataclass
class MigrationRecord:
    """Record of a single applied migration."""

    id: int
    filename: str
    applied_at: datetime | None

    @property
    def version(self) -> str | None:
        return migration_version(self.filename)


@dataclass
class MigrationResult:
    """Result of a migration run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def raise_for_errors(self) -> None:
        """Raise ``MigrationError`` for the first failed migration, if any."""
        for name, message in self.errors.items():
            raise MigrationError(f"Migration {name} failed: {message}", migration=name)


def migration_version(filename: str) -> str | None:
    """Numeric prefix of a migration filename (``001_init.sql`` -> ``"001"``)."""
    match = _VERSION_RE.match(filename)
    return match.group(1) if match else None


def split_statements(sql: str) -> list[str]:
    """Split a migration script into individual statements.

    Full-line ``--`` comments are dropped; statements end with ``;`` at the
    end of a line.  Migration files must not put ``;`` at a line end inside
    a literal or a trigger body.
    """
    statements: list[str] = []
    buffer: list[str] = []
    for line in sql.splitlines():
        if line.strip().startswith("--"):
            continue
        buffer.append(line)
        if line.rstrip().endswith(";"):
            statement = "\n".join(buffer).strip().rstrip(";").strip()
            if statement:
                statements.append(statement)
            buffer = []
    tail = "\n".join(buffer).strip()
    if tail:
        statements.append(tail)
    return statements


class MigrationRunner:
    """Applies SQL migrations from a per-dialect schema directory.

    Parameters
    ----------
    engine
        SQLAlchemy engine for the target database.
    schema_dir
        Directory containing numbered ``.sql`` files.  Defaults to
        ``provisioning/core/schema/<dialect>/``.

    Example::

        from provisioning.core.orm import create_provisioning_engine
        from provisioning.core.migrations import MigrationRunner

        engine = create_provisioning_engine("sqlite:///provisioning.db")
        result = MigrationRunner(engine).apply_pending()
        result.raise_for_errors()
    """

    def __init__(
        self,
        engine: Engine,
        schema_dir: Path | str | None = None,
    ) -> None:
        self._engine = engine
        if schema_dir is not None:
            self._schema_dir = Path(schema_dir)
        else:
            self._schema_dir = _SCHEMA_ROOT / engine.dialect.name
        self._ensure_migrations_table()

    @property
    def schema_dir(self) -> Path:
        return self._schema_dir

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply_pending(self) -> MigrationResult:
        """Apply all pending migrations in filename order.

        Each file runs in its own transaction together with its bookkeeping
        row.  The run stops at the first failing file.
        """
        result = MigrationResult()
        applied = {r.filename for r in self.get_applied()}

        for sql_file in self._discover_migrations():
            name = sql_file.name
            if name in applied:
                result.skipped.append(name)
                continue

            try:
                sql = sql_file.read_text(encoding="utf-8")
                with self._engine.begin() as conn:
                    for statement in split_statements(sql):
                        conn.exec_driver_sql(statement)
                    self._record_migration(conn, name)
                result.applied.append(name)
                logger.info("migration.applied", migration=name)
            except Exception as exc:
                result.errors[name] = str(exc)
                logger.error("migration.failed", migration=name, error=str(exc))
                break

        return result

    def get_applied(self) -> list[MigrationRecord]:
        """Return list of already-applied migrations."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(_migrations.c.id, _migrations.c.filename, _migrations.c.applied_at)
                .order_by(_migrations.c.id)
            ).all()
        return [
            MigrationRecord(id=row.id, filename=row.filename, applied_at=row.applied_at)
            for row in rows
        ]

    def get_pending(self) -> list[str]:
        """Return filenames of migrations not yet applied."""
        applied = {r.filename for r in self.get_applied()}
        return [f.name for f in self._discover_migrations() if f.name not in applied]

    def current_version(self) -> str | None:
        """Version prefix of the last applied migration, or ``None``."""
        records = self.get_applied()
        if not records:
            return None
        return records[-1].version

    def rollback_last(self) -> str | None:
        """Remove the last migration record (does NOT reverse SQL).

        Returns the filename of the removed record, or ``None`` if no
        migrations exist.

        .. warning::
            This only removes the tracking record. It does **not** execute
            any ``DROP`` or ``ALTER`` statements.
        """
        records = self.get_applied()
        if not records:
            return None
        last = records[-1]
        with self._engine.begin() as conn:
            conn.execute(delete(_migrations).where(_migrations.c.id == last.id))
        logger.info("migration.rolled_back", migration=last.filename)
        return last.filename

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_migrations_table(self) -> None:
        """Create the ``_migrations`` table if it doesn't exist."""
        with self._engine.begin() as conn:
            _migrations.create(conn, checkfirst=True)

    def _discover_migrations(self) -> list[Path]:
        """Return sorted list of ``.sql`` files in the schema directory."""
        if not self._schema_dir.exists():
            return []
        return sorted(self._schema_dir.glob("*.sql"))

    def _record_migration(self, conn: Connection, filename: str) -> None:
        conn.execute(insert(_migrations).values(filename=filename))
