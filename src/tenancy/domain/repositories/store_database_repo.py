from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from src.tenancy.domain.entities.store_database import ConnectionStatus, StoreDatabaseDescriptor


class StoreDatabaseRepository(ABC):
    """
    Master-database access to per-store database descriptors.
    At most one active row per store; replaced rows are deactivated, never deleted.
    """

    @abstractmethod
    async def get_active(self, store_id: str) -> Optional[StoreDatabaseDescriptor]:
        """Return the active descriptor for the store or None (inactive rows are ignored)."""

    @abstractmethod
    async def replace_active(
        self,
        store_id: str,
        database_type: str,
        connection_string_encrypted: str,
        host: Optional[str] = None,
    ) -> StoreDatabaseDescriptor:
        """Deactivate the current active row (if any) and insert a new active, untested one."""

    @abstractmethod
    async def deactivate(self, store_id: str) -> bool:
        """Flip is_active to false on the active row; True if a row was affected."""

    @abstractmethod
    async def set_connection_status(self, store_id: str, status: ConnectionStatus) -> bool:
        """Stamp connection_status and last_connection_test on the active row."""
