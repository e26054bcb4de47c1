from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from src.tenancy.domain.entities.integration_config import IntegrationConfigRecord


class IntegrationConfigRepository(ABC):
    """
    Raw persistence of integration_configs rows for one tenant database.
    Values are stored exactly as given; encryption is the record store's job.
    """

    @abstractmethod
    async def find_active(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        """Active row for (store, type) or None."""

    @abstractmethod
    async def find_inactive(self, store_id: str, integration_type: str) -> Optional[IntegrationConfigRecord]:
        """Any inactive row for (store, type) or None (most recently updated first)."""

    @abstractmethod
    async def list_active(self, store_id: str) -> List[IntegrationConfigRecord]:
        """All active rows of the store."""

    @abstractmethod
    async def insert(self, store_id: str, integration_type: str, config_data: Dict[str, Any]) -> IntegrationConfigRecord:
        """Insert a new active row with idle/untested status machines."""

    @abstractmethod
    async def update(self, record_id: str, values: Dict[str, Any]) -> Optional[IntegrationConfigRecord]:
        """Update columns of one row and return it (None when the id does not exist)."""
