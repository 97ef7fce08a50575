"""
In-memory record store: the authoritative local map of StateRecords.

All operations are synchronous. Point lookups are O(1); type filters and
queries scan the map. A re-entrant lock guards every mutation so direct
callers and an in-flight sync can interleave safely.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from ..core.models import StateRecord, SyncStatus, utc_now
from ..errors import IntegrityError
from ..hashing.canonical import fingerprint
from ..hashing.digest import constant_time_equals, hash_id


logger = logging.getLogger(__name__)

DataPredicate = Callable[[Dict[str, Any]], bool]


class RecordStore:
    """
    Keyed collection of versioned state records.
    
    Records handed out are copies; the only way to change stored state is
    through the store's own methods, which keep fingerprints current.
    """

    def __init__(self, records: Optional[Sequence[StateRecord]] = None):
        """
        Initialize the store.
        
        Args:
            records: Optional records to seed the store with (taken as-is)
        """
        self._records: Dict[str, StateRecord] = {}
        self._last_sync: Optional[str] = None
        self._hash = ""
        self._lock = threading.RLock()

        for record in records or []:
            self._records[record.id] = record.copy()
        self.refresh_hash()

    @contextmanager
    def lock(self) -> Iterator["RecordStore"]:
        """Hold the store lock across a read-modify-write sequence."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, record_type: str, data: Dict[str, Any]) -> StateRecord:
        """
        Create a new record, local-only until its first sync.
        
        Args:
            record_type: Category tag
            data: Payload mapping
            
        Returns:
            Copy of the stored record
        """
        with self._lock:
            record_id = hash_id(record_type or "sr")
            while record_id in self._records:
                record_id = hash_id(record_type or "sr")
            record = StateRecord.new(record_id, record_type, data)
            self._records[record.id] = record
            self.refresh_hash()
            logger.debug(f"Created record {record.id} ({record_type})")
            return record.copy()

    def get(self, record_id: str) -> Optional[StateRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.copy() if record else None

    def get_by_type(self, record_type: str) -> List[StateRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values() if r.type == record_type]

    def update(self, record_id: str, data: Dict[str, Any]) -> Optional[StateRecord]:
        """
        Shallow-merge `data` into a record's payload.
        
        Recomputes the fingerprint, bumps the version and clears syncedTo.
        
        Returns:
            Copy of the updated record, or None if the id is unknown
        """
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None

            merged = dict(record.data)
            merged.update(copy.deepcopy(data))
            record.data = merged
            record.fingerprint = fingerprint(merged)
            record.version += 1
            record.updated_at = utc_now()
            record.synced_to = set()

            self.refresh_hash()
            return record.copy()

    def delete(self, record_id: str) -> bool:
        """
        Remove a record locally.
        
        No tombstone is kept: a later pull from a store that still holds the
        record brings it back.
        """
        with self._lock:
            if self._records.pop(record_id, None) is None:
                return False
            self.refresh_hash()
            return True

    def query(
        self,
        record_type: Optional[str] = None,
        predicate: Optional[DataPredicate] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[StateRecord]:
        """
        Filter records: type first, then predicate, then offset, then limit.
        
        Args:
            record_type: Only records with this type
            predicate: Called with each record's payload
            limit: Maximum number of results
            offset: Number of filtered results to skip
        """
        with self._lock:
            results = list(self._records.values())

            if record_type:
                results = [r for r in results if r.type == record_type]

            if predicate:
                results = [r for r in results if predicate(r.data)]

            if offset:
                results = results[offset:]

            if limit is not None:
                results = results[:limit]

            return [r.copy() for r in results]

    def all(self) -> List[StateRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values()]

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def replace(self, record: StateRecord, rehash: bool = True) -> StateRecord:
        """
        Install a complete record, overwriting any record with the same id.
        
        The fingerprint is recomputed from the payload so it can never be stale.
        """
        with self._lock:
            stored = record.copy()
            stored.fingerprint = fingerprint(stored.data)
            self._records[stored.id] = stored
            if rehash:
                self.refresh_hash()
            return stored.copy()

    def mark_synced(
        self,
        record_id: str,
        adapter: str,
        expected_fingerprint: Optional[str] = None,
        rehash: bool = True,
    ) -> bool:
        """
        Record that `adapter` acknowledged a record.
        
        When `expected_fingerprint` is given the acknowledgment only applies if
        the record still carries that fingerprint (it may have been updated
        while the push was in flight).
        """
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return False
            if expected_fingerprint is not None and record.fingerprint != expected_fingerprint:
                return False
            if adapter in record.synced_to:
                return True
            record.synced_to.add(adapter)
            if rehash:
                self.refresh_hash()
            return True

    def unmark_synced(self, record_id: str, adapter: str, rehash: bool = True) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or adapter not in record.synced_to:
                return False
            record.synced_to.discard(adapter)
            if rehash:
                self.refresh_hash()
            return True

    @property
    def last_sync(self) -> Optional[str]:
        return self._last_sync

    def set_last_sync(self, timestamp: Optional[str] = None) -> None:
        with self._lock:
            self._last_sync = timestamp or utc_now().isoformat()
            self.refresh_hash()

    @property
    def state_hash(self) -> str:
        return self._hash

    def records_document(self) -> Dict[str, Dict[str, Any]]:
        """Serialize the records map as id -> record dict."""
        with self._lock:
            return {rid: r.to_dict() for rid, r in self._records.items()}

    def refresh_hash(self) -> str:
        """Recompute the store-wide hash over the records map and lastSync."""
        with self._lock:
            self._hash = compute_state_hash(self.records_document(), self._last_sync)
            return self._hash

    def get_sync_status(self, adapter_names: Sequence[str] = ()) -> SyncStatus:
        """
        Summarize the store for observability.
        
        Args:
            adapter_names: Configured adapters; a record is pending until it is
                synced to as many adapters as are configured
        """
        with self._lock:
            required = len(adapter_names)
            pending = sum(1 for r in self._records.values() if len(r.synced_to) < required)
            return SyncStatus(
                last_sync=self._last_sync,
                record_count=len(self._records),
                pending_sync=pending,
                hash=self._hash,
            )

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        """
        Export the persisted document: records, lastSync and store hash.
        """
        with self._lock:
            return {
                "records": self.records_document(),
                "lastSync": self._last_sync,
                "hash": self._hash,
                "exportedAt": utc_now().isoformat(),
            }

    def import_state(self, document: Dict[str, Any], verify: bool = True) -> int:
        """
        Replace the whole store from an exported document.
        
        Ids, payloads and versions are kept; syncedTo is reset because an
        import is not a sync acknowledgment.
        
        Args:
            document: Document produced by export_state()
            verify: Raise IntegrityError on fingerprint/hash mismatches
                instead of logging a warning
            
        Returns:
            Number of records imported
        """
        raw_records = document.get("records") or {}
        if not isinstance(raw_records, dict):
            raise ValueError("State document 'records' must be a mapping")
        last_sync = document.get("lastSync") or None

        expected_hash = document.get("hash")
        if expected_hash:
            actual_hash = compute_state_hash(raw_records, last_sync)
            if not constant_time_equals(actual_hash, str(expected_hash)):
                self._integrity_problem(
                    "State document hash does not match its records",
                    str(expected_hash), actual_hash, verify,
                )

        imported: Dict[str, StateRecord] = {}
        for record_id, raw in raw_records.items():
            record = StateRecord.from_dict(dict(raw, id=raw.get("id", record_id)))
            actual = record.compute_fingerprint()
            if record.fingerprint and not constant_time_equals(actual, record.fingerprint):
                self._integrity_problem(
                    f"Record {record.id} fingerprint does not match its data",
                    record.fingerprint, actual, verify,
                )
            record.fingerprint = actual
            record.synced_to = set()
            imported[record.id] = record

        with self._lock:
            self._records = imported
            self._last_sync = last_sync
            self.refresh_hash()

        logger.info(f"Imported {len(imported)} records")
        return len(imported)

    @staticmethod
    def _integrity_problem(message: str, expected: str, actual: str, strict: bool) -> None:
        if strict:
            raise IntegrityError(message, expected=expected, actual=actual)
        logger.warning(f"{message} (expected {expected[:16]}..., got {actual[:16]}...)")

    def clear(self) -> None:
        """Drop all records and sync metadata."""
        with self._lock:
            self._records.clear()
            self._last_sync = None
            self.refresh_hash()


def compute_state_hash(records: Dict[str, Any], last_sync: Optional[str]) -> str:
    """Fingerprint of a records map together with its lastSync marker."""
    return fingerprint({"records": records, "lastSync": last_sync})
