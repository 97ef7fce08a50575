"""
In-memory remote store adapter.

Useful as a reference implementation and for tests: failures and slow
responses can be injected.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from ..core.adapter import RemoteBlob, RemoteStoreAdapter
from ..errors import AdapterError


logger = logging.getLogger(__name__)


class InMemoryAdapter(RemoteStoreAdapter):
    """
    Dict-backed adapter.
    
    Attributes:
        delay: Seconds to sleep inside every call
        gate: When set, retrieve()/store() block until the event is set
        entered: Set whenever a call starts (lets tests wait for a sync to
            be in flight)
        fail_next_retrieve / fail_next_store: Raised once by the next call
    """

    def __init__(self, name: str = "memory", delay: float = 0.0):
        self.name = name
        self.delay = delay
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.fail_next_retrieve: Optional[Exception] = None
        self.fail_next_store: Optional[Exception] = None

        self.blobs: Dict[str, RemoteBlob] = {}
        self.store_calls: List[str] = []
        self.retrieve_calls: List[str] = []
        self._lock = threading.Lock()

    def _enter(self) -> None:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait()
        if self.delay:
            time.sleep(self.delay)

    def retrieve(self, key: str) -> Optional[RemoteBlob]:
        self._enter()
        with self._lock:
            self.retrieve_calls.append(key)
            if self.fail_next_retrieve is not None:
                error, self.fail_next_retrieve = self.fail_next_retrieve, None
                raise error
            return self.blobs.get(key)

    def store(self, key: str, payload: RemoteBlob) -> None:
        self._enter()
        with self._lock:
            self.store_calls.append(key)
            if self.fail_next_store is not None:
                error, self.fail_next_store = self.fail_next_store, None
                raise error
            self.blobs[key] = RemoteBlob(blob=payload.blob, fingerprint=payload.fingerprint)
        logger.debug(f"{self.name}: stored {len(payload.blob)} bytes under {key}")

    def put_document(self, key: str, document: dict) -> RemoteBlob:
        """Seed a state document directly, fingerprinting it like a real writer."""
        blob = RemoteBlob.from_document(document)
        with self._lock:
            self.blobs[key] = blob
        return blob

    def get_name(self) -> str:
        return self.name


def unavailable(name: str, message: str = "connection refused") -> AdapterError:
    """Build a retryable adapter error for simulated outages."""
    return AdapterError(message, adapter=name, retryable=True)
