"""SQLAlchemy 2.0 ORM layer for accounts, roles, permissions and sessions.

Modules
-------
base        ProvisioningBase (declarative base) + CreatedAtMixin
session     Engine factory, ProvisioningSession, pool inspection
tables      Mapped table classes (AccountTable, RoleTable, ...)

Tags:
    provisioning, orm, sqlalchemy, declarative

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from provisioning.core.orm.base import CreatedAtMixin, ProvisioningBase
from provisioning.core.orm.session import (
    PoolStatus,
    ProvisioningSession,
    create_provisioning_engine,
    pool_status,
    provisioning_session_factory,
)
from provisioning.core.orm.tables import (
    AccountRoleTable,
    AccountTable,
    MigrationTable,
    PermissionTable,
    RolePermissionTable,
    RoleTable,
    SessionTable,
)

__all__ = [
    "ProvisioningBase",
    "CreatedAtMixin",
    "create_provisioning_engine",
    "ProvisioningSession",
    "provisioning_session_factory",
    "PoolStatus",
    "pool_status",
    "MigrationTable",
    "AccountTable",
    "RoleTable",
    "AccountRoleTable",
    "PermissionTable",
    "RolePermissionTable",
    "SessionTable",
]
