"""
Synchronization engine, conflict policy and periodic scheduling.
"""

from .engine import SyncEngine, DEFAULT_STATE_KEY
from .resolver import resolve_conflict, coerce_policy
from .scheduler import AutoSyncScheduler

__all__ = [
    "SyncEngine",
    "DEFAULT_STATE_KEY",
    "resolve_conflict",
    "coerce_policy",
    "AutoSyncScheduler",
]
