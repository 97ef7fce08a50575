"""
State synchronization with content-addressable hashing.

This package provides:
- A thread-safe local record store with canonical fingerprints
- A pull/merge/push sync engine over pluggable remote stores
- Conflict resolution policies (local, remote, latest, manual)
- Hashing utilities: salted iterated hashes, layered hashes, Merkle roots
"""

from .errors import (
    AdapterError,
    ConcurrentSyncRejected,
    ConflictUnresolved,
    IntegrityError,
    StateSyncError,
    UnsupportedAlgorithmError,
)
from .hashing import canonicalize, fingerprint, layered_hash, merkle_root, hash_value, verify
from .core import (
    ConflictResolution,
    FailedOperation,
    RemoteBlob,
    RemoteStoreAdapter,
    StateConflict,
    StateRecord,
    StateSyncResult,
    SyncDirection,
    SyncOptions,
    SyncStatus,
)
from .store import RecordStore, load_store, save_store
from .sync import AutoSyncScheduler, SyncEngine
from .adapters import FileStoreAdapter, HttpKeyValueAdapter, InMemoryAdapter

__version__ = "0.1.0"

__all__ = [
    "AdapterError",
    "ConcurrentSyncRejected",
    "ConflictUnresolved",
    "IntegrityError",
    "StateSyncError",
    "UnsupportedAlgorithmError",
    "canonicalize",
    "fingerprint",
    "layered_hash",
    "merkle_root",
    "hash_value",
    "verify",
    "ConflictResolution",
    "FailedOperation",
    "RemoteBlob",
    "RemoteStoreAdapter",
    "StateConflict",
    "StateRecord",
    "StateSyncResult",
    "SyncDirection",
    "SyncOptions",
    "SyncStatus",
    "RecordStore",
    "load_store",
    "save_store",
    "AutoSyncScheduler",
    "SyncEngine",
    "FileStoreAdapter",
    "HttpKeyValueAdapter",
    "InMemoryAdapter",
]
