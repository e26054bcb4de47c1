from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.shared.config import Settings, get_settings
from src.shared.logging import get_logger
from src.tenancy.application.services.tenant_record_store import TenantRecordStore
from src.tenancy.domain.repositories.integration_config_repo import IntegrationConfigRepository
from src.tenancy.infrastructure.adapters.factory import AdapterFactory, build_adapter
from src.tenancy.infrastructure.connection.connection_cache import ConnectionCache
from src.tenancy.infrastructure.connection.connection_manager import ConnectionManager
from src.tenancy.infrastructure.connection.master_database import MasterDatabase
from src.tenancy.infrastructure.crypto.credential_cipher import CredentialCipher
from src.tenancy.infrastructure.repositories.integration_config_repo_impl import integration_repository_for
from src.tenancy.infrastructure.repositories.store_database_repo_impl import SqlStoreDatabaseRepository

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Everything one process needs to resolve tenants; built once, closed at shutdown."""
    settings: Settings
    cipher: CredentialCipher
    master: MasterDatabase
    records: TenantRecordStore
    connections: ConnectionManager

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        adapter_factory: AdapterFactory = build_adapter,
        cache: Optional[ConnectionCache] = None,
    ) -> "AppContext":
        settings = settings or get_settings()
        cipher = CredentialCipher.from_settings(settings)
        master = MasterDatabase(settings.master_database_url, settings)
        descriptors = SqlStoreDatabaseRepository(master)

        holder: dict = {}

        async def config_repository_for(store_id: str) -> IntegrationConfigRepository:
            handle = await holder["connections"].get_store_connection(store_id)
            return integration_repository_for(handle)

        records = TenantRecordStore(cipher, descriptors, config_repository_for)
        connections = ConnectionManager(
            descriptors=records,
            cipher=cipher,
            master=master,
            cache=cache if cache is not None else ConnectionCache(),
            adapter_factory=adapter_factory,
            settings=settings,
        )
        holder["connections"] = connections
        logger.info("Application context built", environment=settings.environment)
        return cls(settings=settings, cipher=cipher, master=master, records=records, connections=connections)

    async def close(self) -> None:
        await self.connections.close_all()
