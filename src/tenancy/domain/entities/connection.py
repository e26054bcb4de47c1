from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from src.tenancy.domain.entities.store_database import DatabaseType


@dataclass(frozen=True, slots=True)
class CachedConnectionEntry:
    """A live tenant handle that passed its probe; lives until evicted or shutdown."""
    handle: Any
    database_type: DatabaseType
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    success: bool
    message: str
    database_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.database_type:
            body["database_type"] = self.database_type
        return body
