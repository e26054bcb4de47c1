import pytest

from src.shared.exceptions import ValidationError
from src.tenancy.application.services.tenant_record_store import TenantRecordStore
from src.tenancy.domain.entities.integration_config import SyncStatus
from src.tenancy.domain.entities.store_database import ConnectionStatus
from src.tenancy.domain.exceptions import InvalidStatusError, InvalidStoreIdError, UnsupportedBackendTypeError
from src.tenancy.infrastructure.repositories.integration_config_repo_impl import SqlIntegrationConfigRepository
from src.tenancy.infrastructure.repositories.store_database_repo_impl import SqlStoreDatabaseRepository


@pytest.fixture
def config_repo(tenant_adapter):
    return SqlIntegrationConfigRepository.for_adapter(tenant_adapter)


@pytest.fixture
def store(cipher, master_db, config_repo):
    async def repo_for(store_id):
        return config_repo

    return TenantRecordStore(cipher, SqlStoreDatabaseRepository(master_db), repo_for)


async def test_scenario_b_sensitive_fields_encrypted_at_rest(store, config_repo):
    saved = await store.save_integration_config("S1", "shopify", {"accessToken": "abc123", "shopDomain": "s.myshopify.com"})
    assert saved.config_data["accessToken"] == "abc123"
    assert saved.cipher_report.succeeded == ("accessToken",)

    raw = await config_repo.find_active("S1", "shopify")
    assert raw.config_data["accessToken"].startswith("encrypted:")
    assert raw.config_data["shopDomain"] == "s.myshopify.com"

    loaded = await store.load_integration_config("S1", "shopify")
    assert loaded.config_data["accessToken"] == "abc123"
    assert loaded.cipher_report.ok


async def test_scenario_c_second_save_updates_in_place(store, config_repo):
    first = await store.save_integration_config("S1", "shopify", {"accessToken": "abc123"})
    second = await store.save_integration_config("S1", "shopify", {"accessToken": "xyz789", "apiSecret": "s3"})

    assert second.id == first.id
    assert len(await config_repo.list_active("S1")) == 1
    loaded = await store.load_integration_config("S1", "shopify")
    assert loaded.config_data == {"accessToken": "xyz789", "apiSecret": "s3"}


async def test_save_reactivates_inactive_record(store, config_repo):
    first = await store.save_integration_config("S1", "akeneo", {"clientSecret": "c1", "password": "p1"})
    assert await store.deactivate_integration_config("S1", "akeneo") is True
    assert await store.load_integration_config("S1", "akeneo") is None
    assert await store.deactivate_integration_config("S1", "akeneo") is False

    again = await store.save_integration_config("S1", "akeneo", {"clientSecret": "c2", "password": "p2"})
    assert again.id == first.id
    assert again.is_active
    assert again.config_data["clientSecret"] == "c2"


async def test_load_missing_returns_none(store):
    assert await store.load_integration_config("S1", "magento") is None


async def test_unknown_integration_type_stores_plaintext(store, config_repo):
    await store.save_integration_config("S1", "custom-crm", {"token": "plain"})
    raw = await config_repo.find_active("S1", "custom-crm")
    assert raw.config_data == {"token": "plain"}


async def test_legacy_double_encrypted_field_is_read_and_repaired(store, config_repo, cipher):
    double = cipher.encrypt(cipher.encrypt("abc123"))
    await config_repo.insert("S1", "shopify", {"accessToken": double})

    loaded = await store.load_integration_config("S1", "shopify")
    assert loaded.config_data["accessToken"] == "abc123"

    report = await store.repair_double_encryption("S1")
    assert list(report) == ["shopify"]
    assert report["shopify"].succeeded == ("accessToken",) and report["shopify"].ok
    raw = await config_repo.find_active("S1", "shopify")
    assert raw.config_data["accessToken"].startswith("encrypted:")
    assert not cipher.is_double_encrypted(raw.config_data["accessToken"])
    assert cipher.decrypt(raw.config_data["accessToken"]) == "abc123"
    assert await store.repair_double_encryption("S1") == {}


async def test_repair_skips_corrupt_inner_layer_and_repairs_the_rest(store, config_repo, cipher):
    corrupt = cipher.encrypt("encrypted:00ff00ff00ff00ff00ff00ff00ff00ff00ff")
    await config_repo.insert("S1", "aws-s3", {"accessKeyId": "AKIA", "secretAccessKey": corrupt})
    await config_repo.insert("S1", "shopify", {"accessToken": cipher.encrypt(cipher.encrypt("abc123"))})

    report = await store.repair_double_encryption("S1")

    assert report["aws-s3"].failed_fields == ("secretAccessKey",)
    assert report["aws-s3"].succeeded == ()
    assert report["shopify"].succeeded == ("accessToken",)

    s3 = await config_repo.find_active("S1", "aws-s3")
    assert s3.config_data["secretAccessKey"] == corrupt
    shopify = await config_repo.find_active("S1", "shopify")
    assert not cipher.is_double_encrypted(shopify.config_data["accessToken"])
    assert cipher.decrypt(shopify.config_data["accessToken"]) == "abc123"


async def test_undecryptable_field_is_reported_not_fatal(store, config_repo, cipher):
    await config_repo.insert("S1", "shopify", {"accessToken": "encrypted:00ff00ff00ff00ff00ff00ff00ff00ff00ff", "apiSecret": cipher.encrypt("ok")})
    loaded = await store.load_integration_config("S1", "shopify")
    assert loaded.config_data["apiSecret"] == "ok"
    assert loaded.cipher_report.failed_fields == ("accessToken",)
    assert loaded.config_data["accessToken"].startswith("encrypted:")


async def test_list_active_configs_decrypts_each(store):
    await store.save_integration_config("S1", "shopify", {"accessToken": "a"})
    await store.save_integration_config("S1", "aws-s3", {"accessKeyId": "k", "secretAccessKey": "s"})
    configs = await store.list_active_integration_configs("S1")
    assert [c.integration_type for c in configs] == ["aws-s3", "shopify"]
    assert configs[0].config_data["secretAccessKey"] == "s"


async def test_sync_status_machine(store):
    record = await store.save_integration_config("S1", "shopify", {"accessToken": "a"})
    assert record.sync_status is SyncStatus.IDLE

    syncing = await store.update_sync_status(record, "syncing")
    assert syncing.sync_status is SyncStatus.SYNCING and syncing.last_sync_at is None

    failed = await store.update_sync_status(record, SyncStatus.ERROR, "rate limited")
    assert failed.sync_status is SyncStatus.ERROR and failed.sync_error == "rate limited"

    ok = await store.update_sync_status(record, "success")
    assert ok.sync_status is SyncStatus.SUCCESS
    assert ok.last_sync_at is not None and ok.sync_error is None
    assert ok.connection_status is ConnectionStatus.UNTESTED
    assert ok.config_data["accessToken"] == "a"

    with pytest.raises(InvalidStatusError):
        await store.update_sync_status(record, "finished")


async def test_connection_status_is_independent(store):
    record = await store.save_integration_config("S1", "shopify", {"accessToken": "a"})
    await store.update_sync_status(record, "syncing")
    tested = await store.update_connection_status(record.id, "S1", "failed", "401 from shop")
    assert tested.connection_status is ConnectionStatus.FAILED
    assert tested.connection_error == "401 from shop"
    assert tested.connection_tested_at is not None
    assert tested.sync_status is SyncStatus.SYNCING

    assert await store.update_connection_status("no-such-id", "S1", "success") is None


async def test_input_validation(store):
    with pytest.raises(InvalidStoreIdError):
        await store.save_integration_config("null", "shopify", {})
    with pytest.raises(ValidationError):
        await store.save_integration_config("S1", "  ", {})


async def test_descriptor_registration_encrypts_credentials(store, cipher):
    creds = {"connectionString": "postgresql://app:pw@pg.example.com:5432/shop"}
    descriptor = await store.register_descriptor("S1", "relational-postgres", creds)
    assert descriptor.database_type == "postgresql"
    assert descriptor.host == "pg.example.com"
    assert descriptor.connection_string_encrypted.startswith("encrypted:")
    assert "pw" not in descriptor.connection_string_encrypted

    fetched = await store.fetch_descriptor("S1")
    assert fetched.id == descriptor.id
    assert await store.record_connection_test("S1", "success") is True
    assert (await store.fetch_descriptor("S1")).connection_status is ConnectionStatus.SUCCESS

    assert await store.deactivate_descriptor("S1") is True
    assert await store.fetch_descriptor("S1") is None


async def test_descriptor_registration_rejects_unknown_type(store):
    with pytest.raises(UnsupportedBackendTypeError):
        await store.register_descriptor("S1", "cassandra", {"host": "h"})
    with pytest.raises(ValidationError):
        await store.register_descriptor("S1", "mysql", {})
