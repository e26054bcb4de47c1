from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.adapters.document_store import DocumentStoreAdapter, TableQuery
from src.tenancy.infrastructure.adapters.factory import build_adapter
from src.tenancy.infrastructure.adapters.relational import MySQLAdapter, PostgresAdapter, RelationalAdapter

__all__ = [
    "BackendAdapter",
    "DocumentStoreAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "RelationalAdapter",
    "TableQuery",
    "build_adapter",
]
