from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from src.tenancy.domain.entities.store_database import DatabaseType


class BackendAdapter(ABC):
    """
    One live handle to a tenant backing store.

    Lifecycle: connect() -> probe() -> (query / native use)* -> close().
    The connection manager only trusts and caches a handle after probe() succeeded.
    """
    database_type: DatabaseType

    @property
    @abstractmethod
    def host(self) -> Optional[str]:
        """Host the handle points at (never credentials)."""

    @abstractmethod
    async def connect(self) -> None:
        """Build the client / pool. Must not perform I/O-heavy work beyond the handshake."""

    @abstractmethod
    async def probe(self) -> None:
        """Run a one-row existence check; raise on any failure."""

    @abstractmethod
    async def query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute raw SQL with bound parameters and return rows as dicts."""

    @abstractmethod
    async def close(self) -> None:
        """Release the client / pool. Safe to call more than once."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} type={self.database_type.value} host={self.host}>"
