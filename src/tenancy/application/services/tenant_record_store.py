from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from src.shared.exceptions import CryptoError, ValidationError
from src.shared.logging import get_logger
from src.tenancy.domain.entities.integration_config import (
    FieldCipherFailure,
    FieldCipherReport,
    IntegrationConfigRecord,
    SyncStatus,
)
from src.tenancy.domain.entities.store_database import ConnectionStatus, DatabaseType, StoreDatabaseDescriptor
from src.tenancy.domain.repositories.integration_config_repo import IntegrationConfigRepository
from src.tenancy.domain.repositories.store_database_repo import StoreDatabaseRepository
from src.tenancy.domain.sensitive_fields import get_sensitive_fields
from src.tenancy.domain.value_objects.store_id import validate_store_id
from src.tenancy.infrastructure.crypto.credential_cipher import CredentialCipher

logger = get_logger(__name__)

ConfigRepositoryFor = Callable[[str], Awaitable[IntegrationConfigRepository]]


def _descriptor_host(database_type: DatabaseType, credentials: Mapping[str, Any]) -> Optional[str]:
    if database_type is DatabaseType.SUPABASE:
        url = credentials.get("projectUrl") or credentials.get("url")
        return urlparse(str(url)).hostname if url else None
    if credentials.get("host"):
        return str(credentials["host"])
    conn_str = credentials.get("connectionString") or credentials.get("connection_string")
    if conn_str:
        try:
            return make_url(str(conn_str)).host
        except ArgumentError:
            return None
    return None


class TenantRecordStore:
    """
    Persistence of per-store configuration with field-level encryption.

    - integration configs live in the store's tenant database (repository
      resolved per call through `config_repository_for`)
    - database descriptors live in the master database
    Sensitive keys are encrypted on every write and decrypted on every read,
    per the sensitive-field catalog.
    """

    def __init__(
        self,
        cipher: CredentialCipher,
        descriptors: StoreDatabaseRepository,
        config_repository_for: ConfigRepositoryFor,
    ) -> None:
        self._cipher = cipher
        self._descriptors = descriptors
        self._config_repository_for = config_repository_for

    # ---------- helpers ----------

    def _decrypted(self, record: IntegrationConfigRecord) -> IntegrationConfigRecord:
        fields = get_sensitive_fields(record.integration_type)
        data, report = self._cipher.decrypt_fields(record.config_data, fields)
        if not report.ok:
            logger.warning(
                "Some sensitive fields could not be decrypted",
                store_id=record.store_id,
                integration_type=record.integration_type,
                failed_fields=list(report.failed_fields),
            )
        return record.with_config(data, report)

    @staticmethod
    def _require_type(integration_type: str) -> str:
        if not isinstance(integration_type, str) or not integration_type.strip():
            raise ValidationError("integration_type is required")
        return integration_type.strip()

    # ---------- integration configs ----------

    async def save_integration_config(
        self, store_id: str, integration_type: str, config_data: Mapping[str, Any]
    ) -> IntegrationConfigRecord:
        sid = validate_store_id(store_id)
        itype = self._require_type(integration_type)
        encrypted, report = self._cipher.encrypt_fields(config_data, get_sensitive_fields(itype))
        if not report.ok:
            logger.warning(
                "Some sensitive fields were stored unencrypted",
                store_id=sid,
                integration_type=itype,
                failed_fields=list(report.failed_fields),
            )

        repo = await self._config_repository_for(sid)
        existing = await repo.find_active(sid, itype) or await repo.find_inactive(sid, itype)
        if existing is not None:
            saved = await repo.update(existing.id, {"config_data": encrypted, "is_active": True})
            if saved is None:
                # row vanished between lookup and update
                saved = await repo.insert(sid, itype, encrypted)
        else:
            saved = await repo.insert(sid, itype, encrypted)

        logger.info("Integration config saved", store_id=sid, integration_type=itype, record_id=saved.id)
        plain = self._decrypted(saved)
        return plain.with_config(plain.config_data, report)

    async def load_integration_config(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        sid = validate_store_id(store_id)
        itype = self._require_type(integration_type)
        repo = await self._config_repository_for(sid)
        record = await repo.find_active(sid, itype)
        return self._decrypted(record) if record else None

    async def list_active_integration_configs(self, store_id: str) -> List[IntegrationConfigRecord]:
        sid = validate_store_id(store_id)
        repo = await self._config_repository_for(sid)
        return [self._decrypted(r) for r in await repo.list_active(sid)]

    async def deactivate_integration_config(self, store_id: str, integration_type: str) -> bool:
        sid = validate_store_id(store_id)
        itype = self._require_type(integration_type)
        repo = await self._config_repository_for(sid)
        record = await repo.find_active(sid, itype)
        if record is None:
            return False
        await repo.update(record.id, {"is_active": False})
        logger.info("Integration config deactivated", store_id=sid, integration_type=itype)
        return True

    async def update_sync_status(
        self, record: IntegrationConfigRecord, status: Any, error: Optional[str] = None
    ) -> Optional[IntegrationConfigRecord]:
        new_status = SyncStatus.parse(status)
        values: Dict[str, Any] = {"sync_status": new_status, "sync_error": error}
        if new_status is SyncStatus.SUCCESS:
            values["last_sync_at"] = datetime.now(timezone.utc)
        repo = await self._config_repository_for(record.store_id)
        updated = await repo.update(record.id, values)
        return self._decrypted(updated) if updated else None

    async def update_connection_status(
        self, record_id: str, store_id: str, status: Any, error: Optional[str] = None
    ) -> Optional[IntegrationConfigRecord]:
        sid = validate_store_id(store_id)
        values = {
            "connection_status": ConnectionStatus.parse(status),
            "connection_error": error,
            "connection_tested_at": datetime.now(timezone.utc),
        }
        repo = await self._config_repository_for(sid)
        updated = await repo.update(record_id, values)
        return self._decrypted(updated) if updated else None

    async def repair_double_encryption(self, store_id: str) -> Dict[str, FieldCipherReport]:
        """
        Rewrite sensitive fields that carry two encryption layers so they hold one.

        Best effort per field: a field whose inner layer cannot be decrypted is
        left as it is and reported. Returns one report per integration type that
        had a field repaired or failed.
        """
        sid = validate_store_id(store_id)
        repo = await self._config_repository_for(sid)
        reports: Dict[str, FieldCipherReport] = {}
        for record in await repo.list_active(sid):
            data = dict(record.config_data)
            fixed: List[str] = []
            failed: List[FieldCipherFailure] = []
            for name in get_sensitive_fields(record.integration_type):
                value = data.get(name)
                if not self._cipher.is_double_encrypted(value):
                    continue
                try:
                    data[name] = self._cipher.encrypt(self._cipher.decrypt(value))
                except CryptoError as exc:
                    logger.warning(
                        "Could not repair double-encrypted field",
                        store_id=sid,
                        integration_type=record.integration_type,
                        field=name,
                        error=exc.message,
                    )
                    failed.append(FieldCipherFailure(field=name, reason=exc.message))
                    continue
                fixed.append(name)
            if fixed:
                await repo.update(record.id, {"config_data": data})
                logger.info(
                    "Repaired double-encrypted fields",
                    store_id=sid,
                    integration_type=record.integration_type,
                    fields=fixed,
                )
            if fixed or failed:
                reports[record.integration_type] = FieldCipherReport(
                    succeeded=tuple(fixed), failed=tuple(failed)
                )
        return reports

    # ---------- database descriptors (master) ----------

    async def fetch_descriptor(self, store_id: str) -> Optional[StoreDatabaseDescriptor]:
        sid = validate_store_id(store_id)
        descriptor = await self._descriptors.get_active(sid)
        if descriptor is None or not descriptor.is_active:
            return None
        return descriptor

    async def register_descriptor(
        self, store_id: str, database_type: Any, credentials: Mapping[str, Any]
    ) -> StoreDatabaseDescriptor:
        sid = validate_store_id(store_id)
        db_type = DatabaseType.parse(database_type)
        if not isinstance(credentials, Mapping) or not credentials:
            raise ValidationError("credentials must be a non-empty object")
        payload = json.dumps(dict(credentials), separators=(",", ":"), sort_keys=True)
        descriptor = await self._descriptors.replace_active(
            sid,
            db_type.value,
            self._cipher.encrypt(payload),
            host=_descriptor_host(db_type, credentials),
        )
        logger.info(
            "Store database registered",
            store_id=sid,
            database_type=db_type.value,
            host=descriptor.host,
        )
        return descriptor

    async def deactivate_descriptor(self, store_id: str) -> bool:
        sid = validate_store_id(store_id)
        changed = await self._descriptors.deactivate(sid)
        if changed:
            logger.info("Store database deactivated", store_id=sid)
        return changed

    async def record_connection_test(self, store_id: str, status: Any) -> bool:
        sid = validate_store_id(store_id)
        return await self._descriptors.set_connection_status(sid, ConnectionStatus.parse(status))
