from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, select, update

from src.tenancy.domain.entities.store_database import ConnectionStatus, StoreDatabaseDescriptor
from src.tenancy.domain.repositories.store_database_repo import StoreDatabaseRepository
from src.tenancy.infrastructure.connection.master_database import MasterDatabase
from src.tenancy.infrastructure.models.master_models import StoreDatabaseORM


def _to_domain(row: StoreDatabaseORM) -> StoreDatabaseDescriptor:
    return StoreDatabaseDescriptor(
        id=row.id,
        store_id=row.store_id,
        database_type=row.database_type,
        connection_string_encrypted=row.connection_string_encrypted,
        is_active=row.is_active,
        connection_status=ConnectionStatus.parse(row.connection_status),
        last_connection_test=row.last_connection_test,
        host=row.host,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlStoreDatabaseRepository(StoreDatabaseRepository):
    """SQLAlchemy 2.x async implementation over the master database."""

    def __init__(self, master: MasterDatabase) -> None:
        self._master = master

    async def get_active(self, store_id: str) -> Optional[StoreDatabaseDescriptor]:
        sessions = await self._master.sessions()
        async with sessions() as session:
            stmt = (
                select(StoreDatabaseORM)
                .where(
                    and_(
                        StoreDatabaseORM.store_id == store_id,
                        StoreDatabaseORM.is_active.is_(True),
                    )
                )
                .limit(1)
            )
            row = (await session.execute(stmt)).scalars().first()
            return _to_domain(row) if row else None

    async def replace_active(
        self,
        store_id: str,
        database_type: str,
        connection_string_encrypted: str,
        host: Optional[str] = None,
    ) -> StoreDatabaseDescriptor:
        now = datetime.now(timezone.utc)
        sessions = await self._master.sessions()
        async with sessions() as session, session.begin():
            await session.execute(
                update(StoreDatabaseORM)
                .where(
                    and_(
                        StoreDatabaseORM.store_id == store_id,
                        StoreDatabaseORM.is_active.is_(True),
                    )
                )
                .values(is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            row = StoreDatabaseORM(
                store_id=store_id,
                database_type=database_type,
                connection_string_encrypted=connection_string_encrypted,
                host=host,
                is_active=True,
                connection_status=ConnectionStatus.UNTESTED.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            return _to_domain(row)

    async def deactivate(self, store_id: str) -> bool:
        sessions = await self._master.sessions()
        async with sessions() as session, session.begin():
            res = await session.execute(
                update(StoreDatabaseORM)
                .where(
                    and_(
                        StoreDatabaseORM.store_id == store_id,
                        StoreDatabaseORM.is_active.is_(True),
                    )
                )
                .values(is_active=False, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            return (res.rowcount or 0) > 0

    async def set_connection_status(self, store_id: str, status: ConnectionStatus) -> bool:
        now = datetime.now(timezone.utc)
        sessions = await self._master.sessions()
        async with sessions() as session, session.begin():
            res = await session.execute(
                update(StoreDatabaseORM)
                .where(
                    and_(
                        StoreDatabaseORM.store_id == store_id,
                        StoreDatabaseORM.is_active.is_(True),
                    )
                )
                .values(connection_status=status.value, last_connection_test=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return (res.rowcount or 0) > 0
