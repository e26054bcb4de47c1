import pytest

from src.shared.config import Settings, get_settings
from tests.conftest import TEST_KEY, make_settings


def test_defaults_and_derived_flags():
    s = make_settings()
    assert s.is_local and not s.is_prod
    assert s.tenant_pool_size == 5 and s.tenant_max_overflow == 10
    assert s.document_store_timeout_seconds == 30


@pytest.mark.parametrize("key", ["", "   ", "too-short"])
def test_encryption_key_is_required(key):
    with pytest.raises(ValueError):
        make_settings(integration_encryption_key=key)


def test_master_url_scheme_validated():
    with pytest.raises(ValueError):
        make_settings(master_database_url="mysql://root@localhost/master")
    assert make_settings(master_database_url="postgresql://u:p@h/db").master_database_url.startswith("postgresql://")


@pytest.mark.parametrize(
    "field, value",
    [("tenant_pool_size", 0), ("tenant_max_overflow", -1), ("document_store_timeout_seconds", 0), ("log_level", "LOUD"), ("environment", "qa")],
)
def test_invalid_values(field, value):
    with pytest.raises(ValueError):
        make_settings(**{field: value})


def test_safe_dict_masks_secrets():
    dumped = make_settings(master_database_url="postgresql://u:hunter2@h/db").safe_dict()
    assert TEST_KEY not in str(dumped)
    assert "hunter2" not in str(dumped)


def test_get_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("MASTER_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("INTEGRATION_ENCRYPTION_KEY", TEST_KEY)
    monkeypatch.setenv("TENANT_POOL_SIZE", "3")
    get_settings.cache_clear()
    try:
        s = get_settings()
        assert isinstance(s, Settings)
        assert s.tenant_pool_size == 3
        assert get_settings() is s
    finally:
        get_settings.cache_clear()


def test_get_settings_fails_fast_without_key(monkeypatch):
    monkeypatch.setenv("MASTER_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.delenv("INTEGRATION_ENCRYPTION_KEY", raising=False)
    get_settings.cache_clear()
    try:
        with pytest.raises(ValueError):
            get_settings()
    finally:
        get_settings.cache_clear()
