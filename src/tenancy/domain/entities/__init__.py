from .connection import CachedConnectionEntry, ConnectionTestResult
from .integration_config import FieldCipherFailure, FieldCipherReport, IntegrationConfigRecord, SyncStatus
from .store_database import ConnectionStatus, DatabaseType, StoreDatabaseDescriptor

__all__ = [
    "CachedConnectionEntry",
    "ConnectionTestResult",
    "ConnectionStatus",
    "DatabaseType",
    "FieldCipherFailure",
    "FieldCipherReport",
    "IntegrationConfigRecord",
    "StoreDatabaseDescriptor",
    "SyncStatus",
]
