from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.tenancy.domain.entities.integration_config import IntegrationConfigRecord, SyncStatus
from src.tenancy.domain.entities.store_database import ConnectionStatus
from src.tenancy.domain.exceptions import UnsupportedBackendTypeError
from src.tenancy.domain.repositories.integration_config_repo import IntegrationConfigRepository
from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.adapters.document_store import DocumentStoreAdapter
from src.tenancy.infrastructure.adapters.relational import RelationalAdapter
from src.tenancy.infrastructure.models.tenant_models import IntegrationConfigORM

TABLE = IntegrationConfigORM.__tablename__

_UPDATABLE = frozenset({
    "config_data",
    "is_active",
    "sync_status",
    "sync_error",
    "last_sync_at",
    "connection_status",
    "connection_error",
    "connection_tested_at",
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _column_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(values) - _UPDATABLE
    if unknown:
        raise ValueError(f"Not updatable on integration_configs: {sorted(unknown)}")
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}


def _to_domain(row: IntegrationConfigORM) -> IntegrationConfigRecord:
    return IntegrationConfigRecord(
        id=row.id,
        store_id=row.store_id,
        integration_type=row.integration_type,
        config_data=dict(row.config_data or {}),
        is_active=row.is_active,
        sync_status=SyncStatus.parse(row.sync_status),
        sync_error=row.sync_error,
        last_sync_at=row.last_sync_at,
        connection_status=ConnectionStatus.parse(row.connection_status),
        connection_error=row.connection_error,
        connection_tested_at=row.connection_tested_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlIntegrationConfigRepository(IntegrationConfigRepository):
    """integration_configs on a relational tenant database (or the master, for shared tenants)."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    @classmethod
    def for_adapter(cls, adapter: RelationalAdapter) -> "SqlIntegrationConfigRepository":
        return cls(async_sessionmaker(bind=adapter.engine, class_=AsyncSession, expire_on_commit=False))

    async def _first(self, *criteria: Any, newest_first: bool = False) -> Optional[IntegrationConfigRecord]:
        stmt = select(IntegrationConfigORM).where(and_(*criteria))
        if newest_first:
            stmt = stmt.order_by(IntegrationConfigORM.updated_at.desc())
        async with self._sessions() as session:
            row = (await session.execute(stmt.limit(1))).scalars().first()
            return _to_domain(row) if row else None

    async def find_active(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        return await self._first(
            IntegrationConfigORM.store_id == store_id,
            IntegrationConfigORM.integration_type == integration_type,
            IntegrationConfigORM.is_active.is_(True),
        )

    async def find_inactive(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        return await self._first(
            IntegrationConfigORM.store_id == store_id,
            IntegrationConfigORM.integration_type == integration_type,
            IntegrationConfigORM.is_active.is_(False),
            newest_first=True,
        )

    async def list_active(self, store_id: str) -> List[IntegrationConfigRecord]:
        stmt = (
            select(IntegrationConfigORM)
            .where(
                and_(
                    IntegrationConfigORM.store_id == store_id,
                    IntegrationConfigORM.is_active.is_(True),
                )
            )
            .order_by(IntegrationConfigORM.integration_type.asc())
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_domain(r) for r in rows]

    async def insert(self, store_id: str, integration_type: str, config_data: Dict[str, Any]) -> IntegrationConfigRecord:
        now = _utcnow()
        async with self._sessions() as session, session.begin():
            row = IntegrationConfigORM(
                store_id=store_id,
                integration_type=integration_type,
                config_data=dict(config_data),
                is_active=True,
                sync_status=SyncStatus.IDLE.value,
                connection_status=ConnectionStatus.UNTESTED.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            return _to_domain(row)

    async def update(self, record_id: str, values: Dict[str, Any]) -> Optional[IntegrationConfigRecord]:
        cols = _column_values(values)
        cols["updated_at"] = _utcnow()
        async with self._sessions() as session, session.begin():
            res = await session.execute(
                update(IntegrationConfigORM)
                .where(IntegrationConfigORM.id == record_id)
                .values(**cols)
                .execution_options(synchronize_session=False)
            )
            if not res.rowcount:
                return None
            row = await session.get(IntegrationConfigORM, record_id, populate_existing=True)
            return _to_domain(row) if row else None


# ---------- document store (PostgREST) ----------

def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _from_json(row: Mapping[str, Any]) -> IntegrationConfigRecord:
    return IntegrationConfigRecord(
        id=str(row["id"]),
        store_id=str(row["store_id"]),
        integration_type=row["integration_type"],
        config_data=dict(row.get("config_data") or {}),
        is_active=bool(row.get("is_active", True)),
        sync_status=SyncStatus.parse(row.get("sync_status") or SyncStatus.IDLE.value),
        sync_error=row.get("sync_error"),
        last_sync_at=_parse_ts(row.get("last_sync_at")),
        connection_status=ConnectionStatus.parse(row.get("connection_status") or ConnectionStatus.UNTESTED.value),
        connection_error=row.get("connection_error"),
        connection_tested_at=_parse_ts(row.get("connection_tested_at")),
        created_at=_parse_ts(row.get("created_at")),
        updated_at=_parse_ts(row.get("updated_at")),
    )


class DocumentStoreIntegrationConfigRepository(IntegrationConfigRepository):
    """integration_configs on a document-store tenant, through its native query builder."""

    def __init__(self, adapter: DocumentStoreAdapter) -> None:
        self._adapter = adapter

    async def _first(self, store_id: str, integration_type: str, *, active: bool) -> Optional[IntegrationConfigRecord]:
        rows = await (
            self._adapter.table(TABLE)
            .select("*")
            .eq("store_id", store_id)
            .eq("integration_type", integration_type)
            .eq("is_active", active)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        return _from_json(rows[0]) if rows else None

    async def find_active(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        return await self._first(store_id, integration_type, active=True)

    async def find_inactive(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        return await self._first(store_id, integration_type, active=False)

    async def list_active(self, store_id: str) -> List[IntegrationConfigRecord]:
        rows = await (
            self._adapter.table(TABLE)
            .select("*")
            .eq("store_id", store_id)
            .eq("is_active", True)
            .order("integration_type")
            .execute()
        )
        return [_from_json(r) for r in rows]

    async def insert(self, store_id: str, integration_type: str, config_data: Dict[str, Any]) -> IntegrationConfigRecord:
        now = _utcnow().isoformat()
        rows = await self._adapter.table(TABLE).insert({
            "id": str(uuid.uuid4()),
            "store_id": store_id,
            "integration_type": integration_type,
            "config_data": dict(config_data),
            "is_active": True,
            "sync_status": SyncStatus.IDLE.value,
            "connection_status": ConnectionStatus.UNTESTED.value,
            "created_at": now,
            "updated_at": now,
        }).execute()
        return _from_json(rows[0])

    async def update(self, record_id: str, values: Dict[str, Any]) -> Optional[IntegrationConfigRecord]:
        body = {k: _json_value(v) for k, v in _column_values(values).items()}
        body["updated_at"] = _utcnow().isoformat()
        rows = await self._adapter.table(TABLE).update(body).eq("id", record_id).execute()
        return _from_json(rows[0]) if rows else None


def integration_repository_for(handle: BackendAdapter) -> IntegrationConfigRepository:
    """Pick the integration_configs repository matching a resolved tenant handle."""
    if isinstance(handle, DocumentStoreAdapter):
        return DocumentStoreIntegrationConfigRepository(handle)
    if isinstance(handle, RelationalAdapter):
        return SqlIntegrationConfigRepository.for_adapter(handle)
    raise UnsupportedBackendTypeError(f"No integration config repository for {type(handle).__name__}")
