"""
Remote store adapter interface.

Adapters wrap one backend (edge key-value store, CRM, files on disk) and
expose only "retrieve a blob with its fingerprint" and "store a blob".
Retry with backoff for transient failures belongs inside the adapter.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..hashing.canonical import canonicalize, fingerprint


@dataclass
class RemoteBlob:
    """
    Serialized state plus the fingerprint recorded alongside it.
    
    Attributes:
        blob: JSON text of the state document
        fingerprint: Fingerprint of the parsed document as recorded by the writer
    """
    blob: str
    fingerprint: str

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "RemoteBlob":
        """Serialize a state document and fingerprint it."""
        return cls(blob=canonicalize(document), fingerprint=fingerprint(document))

    def parse(self) -> Dict[str, Any]:
        """
        Parse the blob into a document.
        
        Raises:
            ValueError: if the blob is not a JSON object
        """
        document = json.loads(self.blob)
        if not isinstance(document, dict):
            raise ValueError("State blob is not a JSON object")
        return document

    def to_dict(self) -> Dict[str, Any]:
        return {"blob": self.blob, "fingerprint": self.fingerprint}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteBlob":
        return cls(blob=str(data["blob"]), fingerprint=str(data.get("fingerprint", "")))


class RemoteStoreAdapter(ABC):
    """
    Abstract base class for remote store adapters.
    
    Implementations raise AdapterError on failure, with `retryable` set for
    network/rate-limit class problems and cleared for auth/validation ones.
    """

    @abstractmethod
    def retrieve(self, key: str) -> Optional[RemoteBlob]:
        """
        Fetch the blob stored under `key`.
        
        Returns:
            RemoteBlob, or None when nothing is stored under the key
            
        Raises:
            AdapterError if the backend cannot be read
        """
        pass

    @abstractmethod
    def store(self, key: str, payload: RemoteBlob) -> None:
        """
        Store a blob under `key`. Returning normally is the acknowledgment.
        
        Raises:
            AdapterError if the backend rejects the write
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the adapter name used in syncedTo sets."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
