"""
Remote store adapters.
"""

from .memory import InMemoryAdapter
from .file_store import FileStoreAdapter
from .http_kv import HttpKeyValueAdapter

__all__ = [
    "InMemoryAdapter",
    "FileStoreAdapter",
    "HttpKeyValueAdapter",
]
