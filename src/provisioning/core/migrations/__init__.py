"""Schema migration runner.

Manifesto:
    The provisioning workflow assumes the schema is already at the latest
    version.  The runner applies numbered .sql files idempotently, tracking
    what has already been applied in the ``_migrations`` table, so it is
    safe to call on every process start.

Modules
-------
runner    MigrationRunner class with apply_pending() / current_version()

Tags:
    provisioning, migrations, schema, database, idempotent, DDL

Doc-Types:
    package-overview
"""

from provisioning.core.migrations.runner import (
    MigrationRecord,
    MigrationResult,
    MigrationRunner,
    migration_version,
    split_statements,
)

__all__ = [
    "MigrationRunner",
    "MigrationRecord",
    "MigrationResult",
    "migration_version",
    "split_statements",
]
