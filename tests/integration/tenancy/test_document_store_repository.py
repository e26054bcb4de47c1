import json
import uuid

import httpx
import pytest

from src.tenancy.domain.entities.integration_config import SyncStatus
from src.tenancy.domain.exceptions import UnsupportedBackendTypeError
from src.tenancy.infrastructure.adapters.document_store import DocumentStoreAdapter
from src.tenancy.infrastructure.repositories.integration_config_repo_impl import (
    DocumentStoreIntegrationConfigRepository,
    SqlIntegrationConfigRepository,
    integration_repository_for,
)


class FakePostgrest:
    """Just enough of PostgREST's integration_configs endpoint for eq filters."""

    def __init__(self):
        self.rows = []

    def _matches(self, row, params):
        for key, value in params.multi_items():
            if key in ("select", "order", "limit"):
                continue
            expected = value[len("eq."):]
            actual = row.get(key)
            if isinstance(actual, bool):
                actual = str(actual).lower()
            if str(actual) != expected:
                return False
        return True

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/integration_configs"
        params = request.url.params
        if request.method == "GET":
            found = [r for r in self.rows if self._matches(r, params)]
            if "limit" in params:
                found = found[: int(params["limit"])]
            return httpx.Response(200, json=found)
        if request.method == "POST":
            row = json.loads(request.content)
            row.setdefault("id", str(uuid.uuid4()))
            self.rows.append(row)
            return httpx.Response(201, json=[row])
        if request.method == "PATCH":
            body = json.loads(request.content)
            hit = [r for r in self.rows if self._matches(r, params)]
            for r in hit:
                r.update(body)
            return httpx.Response(200, json=hit)
        return httpx.Response(405)


@pytest.fixture
async def doc_repo():
    server = FakePostgrest()
    adapter = DocumentStoreAdapter("https://abc.supabase.co", "srk", transport=httpx.MockTransport(server))
    await adapter.connect()
    yield DocumentStoreIntegrationConfigRepository(adapter), server
    await adapter.close()


async def test_insert_find_update_roundtrip(doc_repo):
    repo, server = doc_repo
    created = await repo.insert("S1", "shopify", {"accessToken": "encrypted:aa"})
    assert created.sync_status is SyncStatus.IDLE
    assert created.created_at is not None

    found = await repo.find_active("S1", "shopify")
    assert found.id == created.id
    assert await repo.find_inactive("S1", "shopify") is None

    updated = await repo.update(created.id, {"sync_status": SyncStatus.SUCCESS, "is_active": False})
    assert updated.sync_status is SyncStatus.SUCCESS
    assert server.rows[0]["sync_status"] == "success"
    assert (await repo.find_inactive("S1", "shopify")).id == created.id
    assert await repo.list_active("S1") == []


async def test_update_unknown_id_returns_none(doc_repo):
    repo, _ = doc_repo
    assert await repo.update("missing", {"sync_status": "syncing"}) is None


async def test_update_rejects_unknown_columns(doc_repo):
    repo, _ = doc_repo
    with pytest.raises(ValueError):
        await repo.update("any", {"store_id": "S2"})


def test_repository_selection(tenant_adapter):
    doc = DocumentStoreAdapter("https://abc.supabase.co", "srk")
    assert isinstance(integration_repository_for(doc), DocumentStoreIntegrationConfigRepository)
    assert isinstance(integration_repository_for(tenant_adapter), SqlIntegrationConfigRepository)
    with pytest.raises(UnsupportedBackendTypeError):
        integration_repository_for(object())  # type: ignore[arg-type]
