"""
Reference data: roles, permissions and which role grants which permission.

Nothing here runs at import time.  Callers invoke ``ensure_roles`` or
``seed_reference_data`` inside their own transaction, against whatever
store they hold, and both are safe to repeat.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from provisioning.core.dialect import dialect_of, insert_ignore
from provisioning.core.logging import get_logger
from provisioning.core.orm.tables import PermissionTable, RolePermissionTable, RoleTable

logger = get_logger(__name__)

DEFAULT_ROLE = "user"
# Ensured by every provisioning call.
WORKFLOW_ROLES: tuple[str, ...] = ("user", "admin")

ROLES: tuple[str, ...] = ("admin", "user", "moderator")
PERMISSIONS: tuple[str, ...] = ("read", "write", "delete", "manage_users")
ROLE_GRANTS: Mapping[str, tuple[str, ...]] = {
    "admin": PERMISSIONS,
    "user": ("read", "write"),
    "moderator": ("read", "write", "delete"),
}


@dataclass(frozen=True)
class SeedSummary:
    """Ids of the reference rows after seeding (new and pre-existing alike)."""

    roles: dict[str, int]
    permissions: dict[str, int]
    grants: int


def _upsert_names(session: Session, table, names: Iterable[str]) -> dict[str, int]:
    names = list(dict.fromkeys(names))
    if not names:
        return {}
    dialect = dialect_of(session)
    for name in names:
        session.execute(insert_ignore(dialect, table.__table__).values(name=name))
    rows = session.execute(select(table.name, table.id).where(table.name.in_(names))).all()
    return {row.name: row.id for row in rows}


def ensure_roles(session: Session, names: Iterable[str] = WORKFLOW_ROLES) -> dict[str, int]:
    """Insert any missing roles and return ``{name: id}`` for all of *names*."""
    return _upsert_names(session, RoleTable, names)


def ensure_permissions(session: Session, names: Iterable[str] = PERMISSIONS) -> dict[str, int]:
    """Insert any missing permissions and return ``{name: id}``."""
    return _upsert_names(session, PermissionTable, names)


def seed_reference_data(
    session: Session,
    grants: Mapping[str, Iterable[str]] = ROLE_GRANTS,
) -> SeedSummary:
    """Upsert all roles, permissions and role grants.

    Does not commit; the caller owns the transaction.
    """
    role_names = list(ROLES) + [r for r in grants if r not in ROLES]
    permission_names = list(PERMISSIONS)
    for granted in grants.values():
        permission_names.extend(p for p in granted if p not in permission_names)

    role_ids = ensure_roles(session, role_names)
    permission_ids = ensure_permissions(session, permission_names)

    dialect = dialect_of(session)
    link = RolePermissionTable.__table__
    count = 0
    for role, granted in grants.items():
        for permission in granted:
            session.execute(
                insert_ignore(dialect, link).values(
                    role_id=role_ids[role], permission_id=permission_ids[permission]
                )
            )
            count += 1

    logger.info(
        "reference.seeded",
        roles=len(role_ids),
        permissions=len(permission_ids),
        grants=count,
    )
    return SeedSummary(roles=role_ids, permissions=permission_ids, grants=count)
