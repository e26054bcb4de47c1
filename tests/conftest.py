import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest

from src.shared.config import Settings
from src.tenancy.application.services.tenant_record_store import TenantRecordStore
from src.tenancy.domain.entities.store_database import DatabaseType, StoreDatabaseDescriptor
from src.tenancy.domain.repositories.store_database_repo import StoreDatabaseRepository
from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.connection.connection_cache import ConnectionCache
from src.tenancy.infrastructure.connection.connection_manager import ConnectionManager
from src.tenancy.infrastructure.connection.master_database import MasterDatabase
from src.tenancy.infrastructure.crypto.credential_cipher import CredentialCipher

TEST_KEY = "unit-test-integration-key-0123456789"


def make_settings(**overrides) -> Settings:
    values = dict(
        environment="local",
        is_testing=True,
        master_database_url="sqlite+aiosqlite:///:memory:",
        integration_encryption_key=TEST_KEY,
        log_format="console",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def cipher(settings):
    return CredentialCipher.from_settings(settings)


# ---------- in-memory master repository ----------

class InMemoryStoreDatabaseRepository(StoreDatabaseRepository):
    def __init__(self):
        self.rows: List[StoreDatabaseDescriptor] = []
        self.fail_status_writes = False

    def _active_index(self, store_id: str) -> Optional[int]:
        for i, row in enumerate(self.rows):
            if row.store_id == store_id and row.is_active:
                return i
        return None

    async def get_active(self, store_id):
        i = self._active_index(store_id)
        return self.rows[i] if i is not None else None

    async def replace_active(self, store_id, database_type, connection_string_encrypted, host=None):
        await self.deactivate(store_id)
        row = StoreDatabaseDescriptor(
            id=f"db-{len(self.rows) + 1}",
            store_id=store_id,
            database_type=database_type,
            connection_string_encrypted=connection_string_encrypted,
            is_active=True,
            host=host,
        )
        self.rows.append(row)
        return row

    async def deactivate(self, store_id):
        i = self._active_index(store_id)
        if i is None:
            return False
        old = self.rows[i]
        self.rows[i] = replace(old, is_active=False)
        return True

    async def set_connection_status(self, store_id, status):
        if self.fail_status_writes:
            raise RuntimeError("master unavailable")
        i = self._active_index(store_id)
        if i is None:
            return False
        old = self.rows[i]
        self.rows[i] = replace(old, connection_status=status, last_connection_test=datetime.now(timezone.utc))
        return True

    def insert_raw(self, store_id, database_type, payload, *, is_active=True):
        row = StoreDatabaseDescriptor(
            id=f"db-{len(self.rows) + 1}",
            store_id=store_id,
            database_type=database_type,
            connection_string_encrypted=payload,
            is_active=is_active,
        )
        self.rows.append(row)
        return row


@pytest.fixture
def descriptor_repo():
    return InMemoryStoreDatabaseRepository()


# ---------- fake backend handles ----------

class FakeAdapter(BackendAdapter):
    def __init__(self, database_type: DatabaseType, credentials, *, fail_probe=False, fail_close=False, probe_delay=0.0):
        self.database_type = database_type
        self.credentials = dict(credentials)
        self.fail_probe = fail_probe
        self.fail_close = fail_close
        self.probe_delay = probe_delay
        self.connected = False
        self.probes = 0
        self.closed = False
        self.queries: List[Any] = []

    @property
    def host(self):
        return self.credentials.get("host")

    async def connect(self):
        self.connected = True

    async def probe(self):
        self.probes += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.fail_probe:
            raise RuntimeError("connection refused by fake server")

    async def query(self, sql, params=None):
        self.queries.append((sql, dict(params or {})))
        return [{"ok": 1}]

    async def close(self):
        self.closed = True
        if self.fail_close:
            raise RuntimeError("close exploded")


class FakeAdapterFactory:
    def __init__(self):
        self.built: List[FakeAdapter] = []
        self.fail_probe = False
        self.fail_close = False
        self.probe_delay = 0.0

    def __call__(self, database_type, credentials, settings=None):
        adapter = FakeAdapter(
            database_type,
            credentials,
            fail_probe=self.fail_probe,
            fail_close=self.fail_close,
            probe_delay=self.probe_delay,
        )
        self.built.append(adapter)
        return adapter


@pytest.fixture
def adapter_factory():
    return FakeAdapterFactory()


@pytest.fixture
def record_store(cipher, descriptor_repo):
    async def no_tenant_repo(store_id):
        raise AssertionError("tenant repository not expected in this test")

    return TenantRecordStore(cipher, descriptor_repo, no_tenant_repo)


@pytest.fixture
async def manager(settings, cipher, record_store, adapter_factory):
    mgr = ConnectionManager(
        descriptors=record_store,
        cipher=cipher,
        master=MasterDatabase(settings.master_database_url, settings),
        cache=ConnectionCache(),
        adapter_factory=adapter_factory,
        settings=settings,
    )
    yield mgr
    await mgr.close_all()
