import asyncio
import json

import pytest

from src.tenancy.domain.entities.store_database import ConnectionStatus, DatabaseType
from src.tenancy.domain.exceptions import (
    ConfigNotFoundError,
    InvalidStoreIdError,
    StoreConnectionError,
    UnsupportedBackendTypeError,
    UnsupportedOperationError,
)

PG_CREDS = {"host": "db.s1.internal", "database": "shop", "user": "app", "password": "pw"}


async def _register(record_store, store_id="S1", database_type="relational-postgres", creds=None):
    return await record_store.register_descriptor(store_id, database_type, creds or PG_CREDS)


async def test_missing_descriptor_raises_and_leaves_cache_untouched(manager):
    with pytest.raises(ConfigNotFoundError):
        await manager.get_store_connection("S404")
    assert len(manager.cache) == 0


async def test_inactive_descriptor_behaves_like_missing(manager, descriptor_repo, cipher):
    descriptor_repo.insert_raw("S1", "postgresql", cipher.encrypt(json.dumps(PG_CREDS)), is_active=False)
    with pytest.raises(ConfigNotFoundError):
        await manager.get_store_connection("S1")
    assert len(manager.cache) == 0


async def test_invalid_store_id(manager):
    with pytest.raises(InvalidStoreIdError):
        await manager.get_store_connection("undefined")


async def test_scenario_a_resolves_probes_and_caches(manager, record_store, adapter_factory):
    await _register(record_store)
    handle = await manager.get_store_connection("S1")

    assert handle.database_type is DatabaseType.POSTGRESQL
    assert handle.credentials == PG_CREDS
    assert handle.connected and handle.probes == 1
    assert "S1" in manager.cache

    again = await manager.get_store_connection("S1")
    assert again is handle
    assert handle.probes == 1
    assert len(adapter_factory.built) == 1


async def test_use_cache_false_builds_fresh_handle(manager, record_store):
    await _register(record_store)
    cached = await manager.get_store_connection("S1")
    fresh = await manager.get_store_connection("S1", use_cache=False)
    assert fresh is not cached
    assert manager.cache.get("S1").handle is cached
    await fresh.close()


async def test_clear_cache_single_store(manager, record_store, adapter_factory):
    await _register(record_store, "S1")
    await _register(record_store, "S2")
    h1 = await manager.get_store_connection("S1")
    h2 = await manager.get_store_connection("S2")

    await manager.clear_cache("S1")
    assert h1.closed
    assert "S1" not in manager.cache and "S2" in manager.cache

    h1b = await manager.get_store_connection("S1")
    assert h1b is not h1
    assert h1b.probes == 1
    assert await manager.get_store_connection("S2") is h2


async def test_clear_cache_all(manager, record_store):
    await _register(record_store, "S1")
    await _register(record_store, "S2")
    handles = [await manager.get_store_connection(s) for s in ("S1", "S2")]
    await manager.clear_cache()
    assert len(manager.cache) == 0
    assert all(h.closed for h in handles)


async def test_clear_cache_during_build_picks_up_new_credentials(manager, record_store, adapter_factory):
    await _register(record_store, creds={**PG_CREDS, "host": "old-db"})
    adapter_factory.probe_delay = 0.05
    pending = asyncio.create_task(manager.get_store_connection("S1"))
    await asyncio.sleep(0.01)
    assert manager.cache.is_building("S1")

    adapter_factory.probe_delay = 0.0
    await _register(record_store, creds={**PG_CREDS, "host": "new-db"})
    await manager.clear_cache("S1")

    handle = await pending
    assert handle.host == "new-db"
    old = adapter_factory.built[0]
    assert old.host == "old-db" and old.closed
    assert await manager.get_store_connection("S1") is handle
    assert manager.cache.get("S1").handle.host == "new-db"


async def test_unsupported_backend_type(manager, descriptor_repo, cipher):
    descriptor_repo.insert_raw("S1", "mongodb", cipher.encrypt(json.dumps(PG_CREDS)))
    with pytest.raises(UnsupportedBackendTypeError):
        await manager.get_store_connection("S1")
    assert len(manager.cache) == 0


async def test_probe_failure_is_connection_error_and_not_cached(manager, record_store, adapter_factory):
    await _register(record_store)
    adapter_factory.fail_probe = True
    with pytest.raises(StoreConnectionError) as ei:
        await manager.get_store_connection("S1")
    assert "connection refused by fake server" in ei.value.details["cause"]["message"]
    assert ei.value.store_id == "S1"
    assert len(manager.cache) == 0
    assert adapter_factory.built[0].closed

    adapter_factory.fail_probe = False
    handle = await manager.get_store_connection("S1")
    assert "S1" in manager.cache and handle.probes == 1


async def test_decryption_failure_is_connection_error(manager, descriptor_repo):
    descriptor_repo.insert_raw("S1", "postgresql", "encrypted:0011223344556677889900aabbccddeeff0011")
    with pytest.raises(StoreConnectionError) as ei:
        await manager.get_store_connection("S1")
    assert ei.value.details["cause"]["type"] == "CryptoError"
    assert len(manager.cache) == 0


async def test_non_object_credentials_rejected(manager, descriptor_repo, cipher):
    descriptor_repo.insert_raw("S1", "postgresql", cipher.encrypt(json.dumps(["not", "an", "object"])))
    with pytest.raises(StoreConnectionError):
        await manager.get_store_connection("S1")


async def test_double_encrypted_credentials_still_resolve(manager, descriptor_repo, cipher):
    descriptor_repo.insert_raw("S1", "mysql", cipher.encrypt(cipher.encrypt(json.dumps(PG_CREDS))))
    handle = await manager.get_store_connection("S1")
    assert handle.database_type is DatabaseType.MYSQL
    assert handle.credentials["database"] == "shop"


async def test_concurrent_first_resolutions_share_one_build(manager, record_store, adapter_factory):
    await _register(record_store)
    adapter_factory.probe_delay = 0.01
    handles = await asyncio.gather(*(manager.get_store_connection("S1") for _ in range(6)))
    assert len(adapter_factory.built) == 1
    assert all(h is handles[0] for h in handles)
    assert handles[0].probes == 1


async def test_concurrent_failures_reach_every_caller(manager, record_store, adapter_factory):
    await _register(record_store)
    adapter_factory.fail_probe = True
    adapter_factory.probe_delay = 0.01
    results = await asyncio.gather(*(manager.get_store_connection("S1") for _ in range(4)), return_exceptions=True)
    assert all(isinstance(r, StoreConnectionError) for r in results)
    assert len(adapter_factory.built) == 1
    assert len(manager.cache) == 0


async def test_query_on_relational_store(manager, record_store):
    await _register(record_store)
    rows = await manager.query("S1", "SELECT * FROM products WHERE id = :id", {"id": 7})
    assert rows == [{"ok": 1}]
    handle = manager.cache.get("S1").handle
    assert handle.queries == [("SELECT * FROM products WHERE id = :id", {"id": 7})]


async def test_query_on_document_store_is_unsupported(manager, record_store):
    await _register(record_store, database_type="supabase", creds={"projectUrl": "https://abc.supabase.co", "serviceRoleKey": "srk"})
    with pytest.raises(UnsupportedOperationError):
        await manager.query("S1", "SELECT 1")


async def test_test_connection_success_records_outcome_and_does_not_cache(manager, record_store, descriptor_repo, adapter_factory):
    await _register(record_store)
    result = await manager.test_store_connection("S1")
    assert result.success is True
    assert result.database_type == "postgresql"
    assert len(manager.cache) == 0
    assert adapter_factory.built[0].closed

    descriptor = await descriptor_repo.get_active("S1")
    assert descriptor.connection_status is ConnectionStatus.SUCCESS
    assert descriptor.last_connection_test is not None


async def test_test_connection_never_raises(manager, record_store, descriptor_repo, adapter_factory):
    assert (await manager.test_store_connection("")).success is False
    missing = await manager.test_store_connection("S404")
    assert missing.success is False and "S404" in missing.message

    await _register(record_store)
    adapter_factory.fail_probe = True
    failed = await manager.test_store_connection("S1")
    assert failed.success is False
    assert "connection refused" in failed.message
    assert (await descriptor_repo.get_active("S1")).connection_status is ConnectionStatus.FAILED


async def test_test_connection_survives_status_write_failure(manager, record_store, descriptor_repo):
    await _register(record_store)
    descriptor_repo.fail_status_writes = True
    result = await manager.test_store_connection("S1")
    assert result.success is True


async def test_connection_info_has_no_secrets(manager, record_store):
    await _register(record_store)
    info = await manager.get_connection_info("S1")
    assert info["cached"] is False and info["host"] == "db.s1.internal"
    await manager.get_store_connection("S1")
    info = await manager.get_connection_info("S1")
    assert info["cached"] is True and info["cached_at"] is not None
    assert "pw" not in json.dumps(info, default=str)


async def test_close_all_continues_after_failures(manager, record_store, adapter_factory):
    adapter_factory.fail_close = True
    await _register(record_store, "S1")
    await _register(record_store, "S2")
    handles = [await manager.get_store_connection(s) for s in ("S1", "S2")]
    await manager.close_all()
    assert all(h.closed for h in handles)
    assert len(manager.cache) == 0


async def test_master_connection_is_lazy_and_idempotent(manager):
    first = await manager.get_master_connection()
    second = await manager.get_master_connection()
    assert first is second
    assert await first.query("SELECT 1 AS one") == [{"one": 1}]
