from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class MasterBase(DeclarativeBase):
    pass


class StoreDatabaseORM(MasterBase):
    """
    Mirrors public.store_databases in the master database.

    - PK id (uuid as text for portability)
    - store_id NOT NULL -> stores(id) (owned by the platform schema)
    - database_type: supabase | postgresql | mysql (validated at dispatch, not here)
    - connection_string_encrypted: cipher output of the JSON credentials
    - host: plain host name for duplicate-database checks (never secret)
    - at most one active row per store (partial unique index)
    """
    __tablename__ = "store_databases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    database_type: Mapped[str] = mapped_column(String(32), nullable=False)
    connection_string_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    host: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    connection_status: Mapped[str] = mapped_column(String(16), nullable=False, default="untested")
    last_connection_test: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index(
            "uq_store_databases__active_store",
            "store_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
