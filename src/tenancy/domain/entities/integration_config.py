from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from src.tenancy.domain.entities.store_database import ConnectionStatus
from src.tenancy.domain.exceptions import InvalidStatusError


class SyncStatus(str, Enum):
    """idle → syncing → {success, error}; success|error → syncing on the next attempt."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def parse(cls, value: object) -> "SyncStatus":
        if isinstance(value, SyncStatus):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise InvalidStatusError(
                f"Unknown sync status: {value}",
                details={"allowed": [s.value for s in cls]},
            ) from None


@dataclass(frozen=True, slots=True)
class FieldCipherFailure:
    """One sensitive field that could not be encrypted/decrypted; it keeps its prior value."""
    field: str
    reason: str


@dataclass(frozen=True, slots=True)
class FieldCipherReport:
    succeeded: Tuple[str, ...] = ()
    failed: Tuple[FieldCipherFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failed_fields(self) -> Tuple[str, ...]:
        return tuple(f.field for f in self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": [{"field": f.field, "reason": f.reason} for f in self.failed],
        }


@dataclass(frozen=True, slots=True)
class IntegrationConfigRecord:
    """
    Per-store configuration of one third-party integration.

    Sensitive keys of `config_data` (per the sensitive-field catalog) are either
    plaintext or "encrypted:"-prefixed ciphertext at rest. Records handed out by
    the record store carry decrypted values plus the `cipher_report` of the
    last encrypt/decrypt pass.
    """
    id: str
    store_id: str
    integration_type: str
    config_data: Dict[str, Any]
    is_active: bool = True
    sync_status: SyncStatus = SyncStatus.IDLE
    sync_error: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    connection_status: ConnectionStatus = ConnectionStatus.UNTESTED
    connection_error: Optional[str] = None
    connection_tested_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cipher_report: FieldCipherReport = field(default_factory=FieldCipherReport)

    def with_config(self, config_data: Dict[str, Any], report: FieldCipherReport) -> "IntegrationConfigRecord":
        return replace(self, config_data=config_data, cipher_report=report)
