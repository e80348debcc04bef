"""Declarative base, mixins and type-map for the provisioning ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Mixins
------
* **CreatedAtMixin**: ``created_at`` with a server default.
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, Integer, Text, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class ProvisioningBase(DeclarativeBase):
    """Shared declarative base for every provisioning table.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``datetime.datetime`` → ``DateTime`` (naive, UTC by convention)
    * ``uuid.UUID`` → ``Uuid`` (native on PostgreSQL, CHAR(32) on SQLite)
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
        uuid.UUID: Uuid,
    }


class CreatedAtMixin:
    """Adds ``created_at`` filled in by the database.

    ``func.now()`` renders as ``CURRENT_TIMESTAMP`` on SQLite and ``now()``
    on PostgreSQL, matching the migration DDL.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
