from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from src.shared.config import Settings
from src.tenancy.domain.entities.store_database import DatabaseType
from src.tenancy.domain.exceptions import UnsupportedBackendTypeError
from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.adapters.document_store import DocumentStoreAdapter
from src.tenancy.infrastructure.adapters.relational import MySQLAdapter, PostgresAdapter

AdapterFactory = Callable[[DatabaseType, Mapping[str, Any], Optional[Settings]], BackendAdapter]


def build_adapter(
    database_type: DatabaseType,
    credentials: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> BackendAdapter:
    """Single dispatch point from backend type to an unconnected adapter."""
    if database_type is DatabaseType.SUPABASE:
        return DocumentStoreAdapter.from_credentials(credentials, settings)
    if database_type is DatabaseType.POSTGRESQL:
        return PostgresAdapter.from_credentials(credentials, settings)
    if database_type is DatabaseType.MYSQL:
        return MySQLAdapter.from_credentials(credentials, settings)
    raise UnsupportedBackendTypeError(f"Unsupported database type: {database_type}")
