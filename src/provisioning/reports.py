"""
Read-side queries over the provisioning schema.

These back the ``list`` commands of the CLI: accounts with their roles,
roles with their permissions, and sessions with their owners.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from provisioning.core.orm.tables import (
    AccountRoleTable,
    AccountTable,
    PermissionTable,
    RolePermissionTable,
    RoleTable,
    SessionTable,
)
from provisioning.core.timestamps import naive_utc_now, to_naive_utc


@dataclass(frozen=True)
class AccountRoleRow:
    username: str
    email: str
    role: str


@dataclass(frozen=True)
class RolePermissionRow:
    role: str
    permission: str


@dataclass(frozen=True)
class SessionRow:
    username: str
    session_id: uuid.UUID
    expires_at: datetime


def list_account_roles(session: Session) -> list[AccountRoleRow]:
    """Every (account, role) pair, ordered by username then role."""
    stmt = (
        select(AccountTable.username, AccountTable.email, RoleTable.name)
        .join(AccountRoleTable, AccountRoleTable.account_id == AccountTable.id)
        .join(RoleTable, RoleTable.id == AccountRoleTable.role_id)
        .order_by(AccountTable.username, RoleTable.name)
    )
    return [
        AccountRoleRow(username=username, email=email, role=role)
        for username, email, role in session.execute(stmt)
    ]


def list_role_permissions(session: Session) -> list[RolePermissionRow]:
    """Every (role, permission) grant, ordered by role then permission."""
    stmt = (
        select(RoleTable.name, PermissionTable.name)
        .join(RolePermissionTable, RolePermissionTable.role_id == RoleTable.id)
        .join(PermissionTable, PermissionTable.id == RolePermissionTable.permission_id)
        .order_by(RoleTable.name, PermissionTable.name)
    )
    return [
        RolePermissionRow(role=role, permission=permission)
        for role, permission in session.execute(stmt)
    ]


def list_sessions(
    session: Session,
    *,
    active_only: bool = True,
    now: datetime | None = None,
) -> list[SessionRow]:
    """Sessions with their owner; by default only those not yet expired."""
    stmt = (
        select(AccountTable.username, SessionTable.id, SessionTable.expires_at)
        .join(AccountTable, AccountTable.id == SessionTable.account_id)
        .order_by(AccountTable.username, SessionTable.expires_at)
    )
    if active_only:
        cutoff = to_naive_utc(now) if now is not None else naive_utc_now()
        stmt = stmt.where(SessionTable.expires_at > cutoff)
    return [
        SessionRow(username=username, session_id=session_id, expires_at=expires_at)
        for username, session_id, expires_at in session.execute(stmt)
    ]


def count_rows(session: Session) -> dict[str, int]:
    """Row count per provisioning table."""
    tables = (
        AccountTable,
        RoleTable,
        AccountRoleTable,
        PermissionTable,
        RolePermissionTable,
        SessionTable,
    )
    return {
        table.__tablename__: session.scalar(select(func.count()).select_from(table)) or 0
        for table in tables
    }
