"""
Core types: data model, error taxonomy and the remote adapter contract.
"""

from ..errors import (
    AdapterError,
    ConcurrentSyncRejected,
    ConflictUnresolved,
    IntegrityError,
    StateSyncError,
    UnsupportedAlgorithmError,
)
from .models import (
    ConflictResolution,
    FailedOperation,
    StateConflict,
    StateRecord,
    StateSyncResult,
    SyncDirection,
    SyncOptions,
    SyncPhase,
    SyncStatus,
)
from .adapter import RemoteBlob, RemoteStoreAdapter

__all__ = [
    "AdapterError",
    "ConcurrentSyncRejected",
    "ConflictUnresolved",
    "IntegrityError",
    "StateSyncError",
    "UnsupportedAlgorithmError",
    "ConflictResolution",
    "FailedOperation",
    "StateConflict",
    "StateRecord",
    "StateSyncResult",
    "SyncDirection",
    "SyncOptions",
    "SyncPhase",
    "SyncStatus",
    "RemoteBlob",
    "RemoteStoreAdapter",
]
