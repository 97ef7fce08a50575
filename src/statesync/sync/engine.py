"""
Synchronization engine for multi-store state reconciliation.

One sync call runs Idle -> Pulling -> Merging -> Pushing -> Idle:
- Pull: fetch every adapter's state blob concurrently, verify fingerprints,
  then merge adapter by adapter in configuration order
- Push: write the full local record set to every adapter that has not yet
  acknowledged the pending records, concurrently

Adapter problems are reported as FailedOperation entries; sync() never
raises them.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..core.adapter import RemoteBlob, RemoteStoreAdapter
from ..core.models import (
    ConflictResolution,
    FailedOperation,
    StateConflict,
    StateRecord,
    StateSyncResult,
    SyncDirection,
    SyncOptions,
    SyncPhase,
    SyncStatus,
    utc_now,
)
from ..errors import AdapterError, ConcurrentSyncRejected, IntegrityError
from ..hashing.canonical import fingerprint
from ..hashing.digest import constant_time_equals
from ..store.record_store import RecordStore
from .resolver import coerce_policy, resolve_conflict


logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "statesync_state"
ENGINE_ADAPTER_NAME = "engine"

# (adapter, return value, error)
FanOutOutcome = Tuple[RemoteStoreAdapter, Any, Optional[BaseException]]
VerifiedState = Tuple[str, Dict[str, StateRecord]]


class SyncEngine:
    """
    Pull/merge/push orchestrator over a RecordStore and a set of adapters.
    
    At most one sync runs at a time per engine; a concurrent request is
    rejected immediately with a ConcurrentSyncRejected-class result.
    """

    def __init__(
        self,
        store: RecordStore,
        adapters: Sequence[RemoteStoreAdapter],
        state_key: str = DEFAULT_STATE_KEY,
        conflict_resolution: Union[ConflictResolution, str] = ConflictResolution.LATEST,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the sync engine.
        
        Args:
            store: Local record store
            adapters: Remote stores, in merge priority order
            state_key: Key the state blob is stored under in every adapter
            conflict_resolution: Default policy for conflicts
            max_workers: Thread pool size for fan-out (one per adapter by default)
        """
        names = [a.get_name() for a in adapters]
        if len(set(names)) != len(names):
            raise ValueError(f"Adapter names must be unique: {names}")

        self.store = store
        self.adapters: List[RemoteStoreAdapter] = list(adapters)
        self.state_key = state_key
        self.conflict_resolution = coerce_policy(conflict_resolution)
        self.max_workers = max_workers

        self._sync_lock = threading.Lock()
        self._phase = SyncPhase.IDLE

    @property
    def adapter_names(self) -> List[str]:
        return [a.get_name() for a in self.adapters]

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def in_progress(self) -> bool:
        return self._sync_lock.locked()

    def get_sync_status(self) -> SyncStatus:
        status = self.store.get_sync_status(self.adapter_names)
        status.in_progress = self.in_progress
        return status

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def sync(
        self,
        options: Optional[SyncOptions] = None,
        direction: Union[SyncDirection, str, None] = None,
        force: Optional[bool] = None,
        conflict_resolution: Union[ConflictResolution, str, None] = None,
    ) -> StateSyncResult:
        """
        Run one synchronization.
        
        Args:
            options: Full option set (defaults to bidirectional)
            direction: Shortcut overriding options.direction
            force: Shortcut overriding options.force
            conflict_resolution: Shortcut overriding the policy for this call
            
        Returns:
            StateSyncResult; `rejected` is set if another sync was in flight
        """
        options = replace(options) if options else SyncOptions()
        if direction is not None:
            options.direction = SyncDirection(direction)
        if force is not None:
            options.force = force
        if conflict_resolution is not None:
            options.conflict_resolution = coerce_policy(conflict_resolution)

        sync_direction = SyncDirection(options.direction)

        if not self._sync_lock.acquire(blocking=False):
            logger.warning("Sync requested while another sync is in progress; rejected")
            return self._rejected_result(sync_direction)

        try:
            policy = coerce_policy(options.conflict_resolution or self.conflict_resolution)
            result = StateSyncResult(direction=sync_direction.value)
            logger.info(
                f"Starting sync direction={sync_direction.value} policy={policy.value} "
                f"adapters={self.adapter_names}"
            )

            try:
                if sync_direction in (SyncDirection.PULL, SyncDirection.BIDIRECTIONAL):
                    result.merge(self._pull(options, policy))

                if sync_direction in (SyncDirection.PUSH, SyncDirection.BIDIRECTIONAL):
                    result.merge(self._push(options))

                self.store.set_last_sync()

            except Exception as e:
                logger.exception("Unexpected error during sync")
                result.failed.append(FailedOperation(
                    adapter=ENGINE_ADAPTER_NAME,
                    phase="sync",
                    reason=str(e) or type(e).__name__,
                    retryable=False,
                    error_type=type(e).__name__,
                ))

            result.completed_at = utc_now()
            logger.info(
                f"Sync finished: synced={len(result.synced)} conflicts={len(result.conflicts)} "
                f"failed={len(result.failed)}"
            )
            return result

        finally:
            self._phase = SyncPhase.IDLE
            self._sync_lock.release()

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def _pull(self, options: SyncOptions, policy: ConflictResolution) -> StateSyncResult:
        """Retrieve, verify and merge remote state from every adapter."""
        self._phase = SyncPhase.PULLING
        result = StateSyncResult(direction=SyncDirection.PULL.value)

        verified: List[VerifiedState] = []
        for adapter, blob, error in self._fan_out(self.adapters, lambda a: a.retrieve(self.state_key)):
            name = adapter.get_name()
            if error is not None:
                result.failed.append(self._failure(name, "pull", error))
                continue
            if blob is None:
                logger.info(f"No remote state under '{self.state_key}' in {name}")
                continue

            try:
                verified.append((name, self._verify_remote(name, blob)))
            except IntegrityError as e:
                logger.error(f"Integrity check failed for {name}; skipping merge: {e}")
                result.failed.append(self._failure(name, "pull", e))
            except Exception as e:
                logger.error(f"Could not parse remote state from {name}; skipping merge: {e}")
                parse_error = AdapterError(f"parse error: {e}", adapter=name, retryable=False)
                result.failed.append(self._failure(name, "pull", parse_error))

        self._phase = SyncPhase.MERGING
        for name, remote_records in verified:
            self._merge(name, remote_records, verified, options, policy, result)

        self.store.refresh_hash()
        return result

    def _verify_remote(self, name: str, blob: RemoteBlob) -> Dict[str, StateRecord]:
        """
        Parse a retrieved blob and check every fingerprint it carries.
        
        Raises:
            IntegrityError: if the document or any record disagrees with its
                recorded fingerprint
            ValueError: if the blob cannot be parsed into records
            OverflowError: if a numeric field is out of range
        """
        document = blob.parse()
        actual = fingerprint(document)
        if not constant_time_equals(actual, blob.fingerprint or ""):
            raise IntegrityError(
                f"Remote state from {name} does not match its fingerprint",
                expected=blob.fingerprint,
                actual=actual,
            )

        raw_records = document.get("records") or {}
        if not isinstance(raw_records, dict):
            raise ValueError("'records' is not a mapping")

        records: Dict[str, StateRecord] = {}
        for record_id, raw in raw_records.items():
            if not isinstance(raw, dict):
                raise ValueError(f"record {record_id!r} is not an object")
            record = StateRecord.from_dict(dict(raw, id=raw.get("id", record_id)))
            computed = record.compute_fingerprint()
            if record.fingerprint and not constant_time_equals(computed, record.fingerprint):
                raise IntegrityError(
                    f"Record {record.id} from {name} does not match its fingerprint",
                    expected=record.fingerprint,
                    actual=computed,
                )
            record.fingerprint = computed
            records[record.id] = record
        return records

    def _merge(
        self,
        name: str,
        remote_records: Dict[str, StateRecord],
        verified: List[VerifiedState],
        options: SyncOptions,
        policy: ConflictResolution,
        result: StateSyncResult,
    ) -> None:
        """Merge one adapter's verified records into the store."""
        for record_id, remote in remote_records.items():
            if not options.accepts_type(remote.type):
                continue

            # Decide and apply under the store lock so a concurrent update()
            # of the same record cannot interleave.
            with self.store.lock():
                local = self.store.get(record_id)

                if local is None:
                    adopted = remote.copy()
                    adopted.synced_to = self._holders(record_id, remote.fingerprint, verified)
                    self.store.replace(adopted, rehash=False)
                    result.synced.append(f"{name}:{record_id}")
                    continue

                if local.fingerprint == remote.fingerprint:
                    self.store.mark_synced(record_id, name, local.fingerprint, rehash=False)
                    continue

                winner = resolve_conflict(local, remote, policy)
                result.conflicts.append(StateConflict(
                    record_id=record_id,
                    adapter=name,
                    local_value=local.data,
                    remote_value=remote.data,
                    local_fingerprint=local.fingerprint,
                    remote_fingerprint=remote.fingerprint,
                    local_updated_at=local.updated_at,
                    remote_updated_at=remote.updated_at,
                    resolution=winner,
                ))
                logger.warning(
                    f"Conflict on {record_id} with {name}: "
                    f"resolution={winner.value if winner else 'manual'}"
                )

                if winner == ConflictResolution.REMOTE:
                    replacement = remote.copy()
                    replacement.version = max(local.version + 1, remote.version)
                    replacement.synced_to = self._holders(record_id, remote.fingerprint, verified)
                    self.store.replace(replacement, rehash=False)
                    result.synced.append(f"{name}:{record_id}:resolved")
                elif winner == ConflictResolution.LOCAL:
                    # Overwrite the remote copy on the next push
                    self.store.unmark_synced(record_id, name, rehash=False)
                    result.synced.append(f"{name}:{record_id}:resolved")

    @staticmethod
    def _holders(record_id: str, record_fingerprint: str, verified: List[VerifiedState]) -> set:
        """Adapters whose retrieved state holds this exact version of a record."""
        return {
            name
            for name, records in verified
            if record_id in records and records[record_id].fingerprint == record_fingerprint
        }

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _push(self, options: SyncOptions) -> StateSyncResult:
        """Write local state to adapters that have not acknowledged it."""
        self._phase = SyncPhase.PUSHING
        result = StateSyncResult(direction=SyncDirection.PUSH.value)
        required = len(self.adapters)

        with self.store.lock():
            snapshot = self.store.all()
            document = {
                "records": self.store.records_document(),
                "lastSync": self.store.last_sync,
                "hash": self.store.state_hash,
            }

        selected = [
            r for r in snapshot
            if options.accepts_type(r.type) and (options.force or len(r.synced_to) < required)
        ]
        if not selected:
            logger.info("Nothing to push")
            return result

        targets = [
            a for a in self.adapters
            if options.force or any(a.get_name() not in r.synced_to for r in selected)
        ]
        payload = RemoteBlob.from_document(document)
        logger.info(f"Pushing {len(selected)} pending records to {[a.get_name() for a in targets]}")

        for adapter, _, error in self._fan_out(targets, lambda a: a.store(self.state_key, payload)):
            name = adapter.get_name()
            if error is not None:
                result.failed.append(self._failure(name, "push", error))
                continue
            for record in selected:
                # Skip records updated while the push was in flight
                if self.store.mark_synced(record.id, name, record.fingerprint, rehash=False):
                    result.synced.append(f"{name}:{record.id}")

        self.store.refresh_hash()
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fan_out(
        self,
        adapters: Sequence[RemoteStoreAdapter],
        call: Callable[[RemoteStoreAdapter], Any],
    ) -> List[FanOutOutcome]:
        """Run `call` against every adapter concurrently; outcomes keep adapter order."""
        if not adapters:
            return []

        outcomes: List[FanOutOutcome] = []
        workers = self.max_workers or len(adapters)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="statesync") as executor:
            futures = [(adapter, executor.submit(call, adapter)) for adapter in adapters]
            for adapter, future in futures:
                try:
                    outcomes.append((adapter, future.result(), None))
                except Exception as e:
                    outcomes.append((adapter, None, e))
        return outcomes

    @staticmethod
    def _failure(name: str, phase: str, error: BaseException) -> FailedOperation:
        retryable = bool(getattr(error, "retryable", False))
        logger.warning(f"{phase} failed for {name} (retryable={retryable}): {error}")
        return FailedOperation(
            adapter=name,
            phase=phase,
            reason=str(error) or type(error).__name__,
            retryable=retryable,
            error_type=type(error).__name__,
        )

    @staticmethod
    def _rejected_result(direction: SyncDirection) -> StateSyncResult:
        now = utc_now()
        return StateSyncResult(
            direction=direction.value,
            started_at=now,
            completed_at=now,
            failed=[FailedOperation(
                adapter=ENGINE_ADAPTER_NAME,
                phase="sync",
                reason="Sync already in progress",
                retryable=ConcurrentSyncRejected.retryable,
                error_type=ConcurrentSyncRejected.__name__,
            )],
            rejected=True,
        )
