"""
Document-store tenant handle.

Talks to the store's PostgREST endpoint (`<projectUrl>/rest/v1`) with the
service key. Raw SQL is not available here; callers use the native
query builder returned by `table(name)`.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import httpx

from src.shared.config import Settings, get_settings
from src.shared.logging import get_logger
from src.tenancy.domain.entities.store_database import DatabaseType
from src.tenancy.domain.exceptions import StoreConnectionError, UnsupportedOperationError
from src.tenancy.infrastructure.adapters.base import BackendAdapter

logger = get_logger(__name__)

PROBE_TABLE = "stores"


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class TableQuery:
    """
    Minimal PostgREST query builder:

        await handle.table("integration_configs").select("*").eq("store_id", sid).limit(1).execute()
        await handle.table("integration_configs").insert({...}).execute()
        await handle.table("integration_configs").update({...}).eq("id", rid).execute()
    """

    def __init__(self, client: httpx.AsyncClient, name: str) -> None:
        self._client = client
        self._name = name
        self._method = "GET"
        self._body: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = None
        self._params: List[Tuple[str, str]] = []

    def select(self, columns: str = "*") -> "TableQuery":
        self._method = "GET"
        self._params.append(("select", columns))
        return self

    def insert(self, rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> "TableQuery":
        self._method = "POST"
        self._body = dict(rows) if isinstance(rows, Mapping) else [dict(r) for r in rows]
        return self

    def update(self, values: Mapping[str, Any]) -> "TableQuery":
        self._method = "PATCH"
        self._body = dict(values)
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._params.append((column, _filter_value(value)))
        return self

    def order(self, column: str, *, desc: bool = False) -> "TableQuery":
        self._params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        return self

    def limit(self, n: int) -> "TableQuery":
        self._params.append(("limit", str(int(n))))
        return self

    async def execute(self) -> List[Dict[str, Any]]:
        headers = {"Prefer": "return=representation"} if self._method != "GET" else {}
        try:
            resp = await self._client.request(
                self._method,
                f"/{self._name}",
                params=self._params,
                json=self._body,
                headers=headers,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreConnectionError(
                f"Document store request failed: {exc.response.status_code}",
                cause=exc,
                details={"table": self._name, "method": self._method},
            ) from exc
        except httpx.HTTPError as exc:
            raise StoreConnectionError(
                "Document store unreachable",
                cause=exc,
                details={"table": self._name, "method": self._method},
            ) from exc
        if not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]


class DocumentStoreAdapter(BackendAdapter):
    database_type = DatabaseType.SUPABASE

    def __init__(
        self,
        project_url: str,
        service_key: str,
        anon_key: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._project_url = project_url.rstrip("/")
        self._service_key = service_key
        self._anon_key = anon_key
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_credentials(
        cls,
        credentials: Mapping[str, Any],
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DocumentStoreAdapter":
        settings = settings or get_settings()
        project_url = credentials.get("projectUrl") or credentials.get("url")
        service_key = credentials.get("serviceRoleKey") or credentials.get("service_role_key")
        missing = [
            name for name, value in (("projectUrl", project_url), ("serviceRoleKey", service_key)) if not value
        ]
        if missing:
            raise StoreConnectionError(
                f"Missing required credential fields: {', '.join(missing)}",
                details={"database_type": cls.database_type.value, "missing": missing},
            )
        return cls(
            str(project_url),
            str(service_key),
            credentials.get("anonKey") or credentials.get("anon_key"),
            timeout=float(settings.document_store_timeout_seconds),
            transport=transport,
        )

    @property
    def host(self) -> Optional[str]:
        return urlparse(self._project_url).hostname

    @property
    def project_url(self) -> str:
        return self._project_url

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Adapter not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=f"{self._project_url}/rest/v1",
            headers={
                "apikey": self._service_key,
                "Authorization": f"Bearer {self._service_key}",
                "Accept": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    def table(self, name: str) -> TableQuery:
        return TableQuery(self.client, name)

    async def probe(self) -> None:
        await self.table(PROBE_TABLE).select("id").limit(1).execute()

    async def query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        raise UnsupportedOperationError(
            "Raw SQL queries are not supported for document-store databases; use table() instead",
            details={"database_type": self.database_type.value},
        )

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
            logger.debug("Document store client closed", host=self.host)
