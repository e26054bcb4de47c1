"""
Resolves a store id to a live, probed handle on that store's tenant database.

Resolution order (never reordered):
  validate -> cache lookup -> fetch active descriptor -> decrypt credentials
  -> dispatch on database_type -> connect -> probe -> cache -> return

Handles enter the cache only after a successful probe. No retries, no TTL.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from src.shared.config import Settings
from src.shared.exceptions import DomainError
from src.shared.logging import get_logger
from src.tenancy.domain.entities.connection import CachedConnectionEntry, ConnectionTestResult
from src.tenancy.domain.entities.store_database import ConnectionStatus, DatabaseType, StoreDatabaseDescriptor
from src.tenancy.domain.exceptions import (
    ConfigNotFoundError,
    InvalidStoreIdError,
    StoreConnectionError,
    UnsupportedOperationError,
)
from src.tenancy.domain.value_objects.store_id import validate_store_id
from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.adapters.factory import AdapterFactory, build_adapter
from src.tenancy.infrastructure.connection.connection_cache import ConnectionCache
from src.tenancy.infrastructure.connection.master_database import MasterDatabase
from src.tenancy.infrastructure.crypto.credential_cipher import CredentialCipher

logger = get_logger(__name__)


class DescriptorSource(Protocol):
    async def fetch_descriptor(self, store_id: str) -> Optional[StoreDatabaseDescriptor]: ...

    async def record_connection_test(self, store_id: str, status: ConnectionStatus) -> bool: ...


class ConnectionManager:
    def __init__(
        self,
        descriptors: DescriptorSource,
        cipher: CredentialCipher,
        master: MasterDatabase,
        cache: Optional[ConnectionCache] = None,
        adapter_factory: AdapterFactory = build_adapter,
        settings: Optional[Settings] = None,
    ) -> None:
        self._descriptors = descriptors
        self._cipher = cipher
        self._master = master
        self._cache = cache if cache is not None else ConnectionCache()
        self._adapter_factory = adapter_factory
        self._settings = settings

    @property
    def cache(self) -> ConnectionCache:
        return self._cache

    # ---------- resolution ----------

    async def get_store_connection(self, store_id: str, use_cache: bool = True) -> BackendAdapter:
        """
        Raises:
          InvalidStoreIdError        empty / sentinel store id
          ConfigNotFoundError        no active descriptor
          UnsupportedBackendTypeError unknown database_type
          StoreConnectionError       decryption, credential, handshake or probe failure
        """
        sid = validate_store_id(store_id)
        if not use_cache:
            return (await self._build(sid)).handle
        entry = await self._cache.get_or_create(
            sid,
            lambda: self._build(sid),
            discard=lambda stale: self._close_quietly(sid, stale.handle),
        )
        return entry.handle

    async def _build(self, store_id: str) -> CachedConnectionEntry:
        descriptor = await self._descriptors.fetch_descriptor(store_id)
        if descriptor is None or not descriptor.is_active:
            raise ConfigNotFoundError(
                f"No active database configuration for store {store_id}",
                details={"store_id": store_id},
            )

        database_type = DatabaseType.parse(descriptor.database_type)
        credentials = self._decrypt_credentials(store_id, descriptor)
        adapter = self._adapter_factory(database_type, credentials, self._settings)

        try:
            await adapter.connect()
            await adapter.probe()
        except Exception as exc:
            await self._close_quietly(store_id, adapter)
            if isinstance(exc, StoreConnectionError):
                raise StoreConnectionError(
                    exc.message, store_id=store_id, cause=exc.cause or exc, details=exc.details
                ) from exc
            raise StoreConnectionError(
                f"Connection probe failed: {exc}", store_id=store_id, cause=exc
            ) from exc

        logger.info(
            "Tenant connection established",
            store_id=store_id,
            database_type=database_type.value,
            host=adapter.host,
        )
        return CachedConnectionEntry(
            handle=adapter,
            database_type=database_type,
            created_at=datetime.now(timezone.utc),
        )

    def _decrypt_credentials(self, store_id: str, descriptor: StoreDatabaseDescriptor) -> Dict[str, Any]:
        try:
            payload = self._cipher.decrypt(descriptor.connection_string_encrypted)
            credentials = json.loads(payload)
        except (DomainError, ValueError, TypeError) as exc:
            logger.error("Failed to decrypt store database credentials", store_id=store_id, error=str(exc))
            raise StoreConnectionError(
                "Failed to decrypt database credentials", store_id=store_id, cause=exc
            ) from exc
        if not isinstance(credentials, dict):
            raise StoreConnectionError(
                "Database credentials must be a JSON object", store_id=store_id
            )
        return credentials

    async def get_master_connection(self) -> BackendAdapter:
        return await self._master.get_adapter()

    async def query(
        self, store_id: str, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        handle = await self.get_store_connection(store_id)
        if not handle.database_type.is_relational:
            raise UnsupportedOperationError(
                "Raw SQL queries are not supported for document-store databases; use table() instead",
                details={"store_id": store_id, "database_type": handle.database_type.value},
            )
        return await handle.query(sql, params)

    # ---------- diagnostics ----------

    async def test_store_connection(self, store_id: str) -> ConnectionTestResult:
        """Same resolution as get_store_connection(use_cache=False); never raises."""
        try:
            sid = validate_store_id(store_id)
        except InvalidStoreIdError as exc:
            return ConnectionTestResult(success=False, message=exc.message)

        try:
            entry = await self._build(sid)
        except ConfigNotFoundError as exc:
            return ConnectionTestResult(success=False, message=exc.message)
        except Exception as exc:
            message = exc.message if isinstance(exc, DomainError) else str(exc)
            logger.warning("Store connection test failed", store_id=sid, error=message)
            await self._record_outcome(sid, ConnectionStatus.FAILED)
            return ConnectionTestResult(success=False, message=message)

        await self._close_quietly(sid, entry.handle)
        await self._record_outcome(sid, ConnectionStatus.SUCCESS)
        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            database_type=entry.database_type.value,
        )

    async def _record_outcome(self, store_id: str, status: ConnectionStatus) -> None:
        try:
            await self._descriptors.record_connection_test(store_id, status)
        except Exception as exc:
            logger.warning(
                "Could not record connection test outcome",
                store_id=store_id,
                status=status.value,
                error=str(exc),
            )

    async def get_connection_info(self, store_id: str) -> Dict[str, Any]:
        """Non-secret view of the store's descriptor and cache state."""
        sid = validate_store_id(store_id)
        descriptor = await self._descriptors.fetch_descriptor(sid)
        if descriptor is None or not descriptor.is_active:
            raise ConfigNotFoundError(
                f"No active database configuration for store {sid}",
                details={"store_id": sid},
            )
        entry = self._cache.get(sid)
        return {
            "store_id": sid,
            "database_type": descriptor.database_type,
            "host": descriptor.host,
            "connection_status": descriptor.connection_status.value,
            "last_connection_test": descriptor.last_connection_test,
            "cached": entry is not None,
            "cached_at": entry.created_at if entry else None,
        }

    # ---------- eviction / shutdown ----------

    async def clear_cache(self, store_id: Optional[str] = None) -> None:
        if store_id is None:
            for sid, entry in self._cache.pop_all():
                await self._close_quietly(sid, entry.handle)
            logger.info("Connection cache cleared")
            return
        sid = validate_store_id(store_id)
        entry = self._cache.pop(sid)
        if entry is not None:
            await self._close_quietly(sid, entry.handle)
            logger.info("Connection cache entry evicted", store_id=sid)

    async def close_all(self) -> None:
        """Close every cached handle, then the master handle. One failing close never blocks the rest."""
        for sid, entry in self._cache.pop_all():
            await self._close_quietly(sid, entry.handle)
        try:
            await self._master.close()
        except Exception as exc:
            logger.error("Failed to close master database", error=str(exc))
        logger.info("All database connections closed")

    async def _close_quietly(self, store_id: str, handle: Any) -> None:
        try:
            await handle.close()
        except Exception as exc:
            logger.error("Failed to close tenant connection", store_id=store_id, error=str(exc))
