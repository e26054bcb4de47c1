from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from src.tenancy.domain.exceptions import InvalidStatusError, UnsupportedBackendTypeError


class DatabaseType(str, Enum):
    """Closed set of backing-store kinds a tenant database can be."""
    SUPABASE = "supabase"        # document store (PostgREST over HTTPS)
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"

    @property
    def is_relational(self) -> bool:
        return self in (DatabaseType.POSTGRESQL, DatabaseType.MYSQL)

    @classmethod
    def parse(cls, value: object) -> "DatabaseType":
        if isinstance(value, DatabaseType):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(_ALIASES.get(raw, raw))
        except ValueError:
            raise UnsupportedBackendTypeError(
                f"Unsupported database type: {value}",
                details={"database_type": value, "supported": [t.value for t in cls]},
            ) from None


_ALIASES = {
    "document-store": "supabase",
    "relational-postgres": "postgresql",
    "postgres": "postgresql",
    "relational-mysql": "mysql",
}


class ConnectionStatus(str, Enum):
    """untested → {success, failed}; any state may be retested."""
    UNTESTED = "untested"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: object) -> "ConnectionStatus":
        if isinstance(value, ConnectionStatus):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise InvalidStatusError(
                f"Unknown connection status: {value}",
                details={"allowed": [s.value for s in cls]},
            ) from None


@dataclass(frozen=True, slots=True)
class StoreDatabaseDescriptor:
    """
    Master-database row describing how to reach one store's tenant database.

    `database_type` is kept as stored so that an unrecognised value surfaces as
    UnsupportedBackendTypeError at dispatch time, not when the row is read.
    `connection_string_encrypted` holds the cipher output of the JSON credentials.
    """
    id: str
    store_id: str
    database_type: str
    connection_string_encrypted: str
    is_active: bool
    connection_status: ConnectionStatus = ConnectionStatus.UNTESTED
    last_connection_test: Optional[datetime] = None
    host: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
