"""
Local record store and its at-rest persistence.
"""

from .record_store import RecordStore, compute_state_hash
from .persistence import (
    get_encryption_key,
    load_state_file,
    load_store,
    save_state_file,
    save_store,
)

__all__ = [
    "RecordStore",
    "compute_state_hash",
    "get_encryption_key",
    "load_state_file",
    "load_store",
    "save_state_file",
    "save_store",
]
