"""
Core data models for state synchronization.

Defines the StateRecord unit of synchronized state plus the value objects
a sync run reports back to its caller.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..errors import ConflictUnresolved
from ..hashing.canonical import fingerprint as compute_fingerprint


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (accepting a trailing 'Z') into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ConflictResolution(str, Enum):
    """Policy applied uniformly to every conflict of one sync call."""
    LOCAL = "local"
    REMOTE = "remote"
    LATEST = "latest"
    MANUAL = "manual"


class SyncDirection(str, Enum):
    """Phases a sync call runs."""
    PULL = "pull"
    PUSH = "push"
    BIDIRECTIONAL = "bidirectional"


class SyncPhase(str, Enum):
    """Engine state machine: Idle -> Pulling -> Merging -> Pushing -> Idle."""
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    PUSHING = "pushing"


@dataclass
class StateRecord:
    """
    The atomic unit of synchronized state.
    
    Attributes:
        id: Opaque identifier, immutable after creation
        type: Free-form category tag used for filtering
        data: Payload mapping; must serialize deterministically
        fingerprint: Digest of `data`, recomputed on every mutation
        version: Audit counter, incremented on every local mutation
        created_at: Creation time (UTC)
        updated_at: Last mutation time (UTC)
        synced_to: Adapter names that acknowledged the current fingerprint
    """
    id: str
    type: str
    data: Dict[str, Any]
    fingerprint: str
    version: int = 1
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    synced_to: Set[str] = field(default_factory=set)

    @classmethod
    def new(cls, record_id: str, record_type: str, data: Dict[str, Any]) -> "StateRecord":
        """Create a version-1 record with a freshly computed fingerprint."""
        now = utc_now()
        payload = copy.deepcopy(dict(data))
        return cls(
            id=record_id,
            type=record_type,
            data=payload,
            fingerprint=compute_fingerprint(payload),
            version=1,
            created_at=now,
            updated_at=now,
        )

    def compute_fingerprint(self) -> str:
        return compute_fingerprint(self.data)

    def has_valid_fingerprint(self) -> bool:
        return self.fingerprint == self.compute_fingerprint()

    def is_fully_synced(self, adapter_names: List[str]) -> bool:
        return set(adapter_names).issubset(self.synced_to)

    def copy(self) -> "StateRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted (camelCase) document shape."""
        return {
            "id": self.id,
            "type": self.type,
            "data": copy.deepcopy(self.data),
            "fingerprint": self.fingerprint,
            "version": self.version,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "syncedTo": sorted(self.synced_to),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateRecord":
        """Create from the persisted document shape ('hash' accepted for the fingerprint)."""
        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise ValueError(f"Record {data.get('id')!r} has a non-mapping payload")
        created = parse_timestamp(data.get("createdAt")) or utc_now()
        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "")),
            data=payload,
            fingerprint=str(data.get("fingerprint") or data.get("hash") or ""),
            version=int(data.get("version", 1)),
            created_at=created,
            updated_at=parse_timestamp(data.get("updatedAt")) or created,
            synced_to=set(data.get("syncedTo") or []),
        )


@dataclass
class StateConflict:
    """
    One disagreement between the local record and a remote copy.
    
    Values are captured before resolution so callers keep an audit trail.
    `resolution` is None when the conflict was left for manual handling.
    """
    record_id: str
    adapter: str
    local_value: Dict[str, Any]
    remote_value: Dict[str, Any]
    local_fingerprint: str
    remote_fingerprint: str
    local_updated_at: Optional[datetime] = None
    remote_updated_at: Optional[datetime] = None
    resolution: Optional[ConflictResolution] = None
    field: str = "data"

    @property
    def is_unresolved(self) -> bool:
        return self.resolution is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "adapter": self.adapter,
            "field": self.field,
            "local_value": self.local_value,
            "remote_value": self.remote_value,
            "local_fingerprint": self.local_fingerprint,
            "remote_fingerprint": self.remote_fingerprint,
            "local_updated_at": format_timestamp(self.local_updated_at),
            "remote_updated_at": format_timestamp(self.remote_updated_at),
            "resolution": self.resolution.value if self.resolution else None,
        }


@dataclass
class FailedOperation:
    """A failure scoped to one adapter (or to the engine itself)."""
    adapter: str
    phase: str
    reason: str
    retryable: bool = False
    error_type: str = ""

    def __str__(self) -> str:
        return f"{self.adapter}:{self.reason}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adapter": self.adapter,
            "phase": self.phase,
            "reason": self.reason,
            "retryable": self.retryable,
            "error_type": self.error_type,
        }


@dataclass
class StateSyncResult:
    """
    Outcome of one sync call. Reported to the caller, never persisted.
    
    `success` means zero failed entries; conflicts are not failures.
    """
    direction: str = SyncDirection.BIDIRECTIONAL.value
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    synced: List[str] = field(default_factory=list)
    failed: List[FailedOperation] = field(default_factory=list)
    conflicts: List[StateConflict] = field(default_factory=list)
    rejected: bool = False

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def unresolved_conflicts(self) -> List[StateConflict]:
        return [c for c in self.conflicts if c.is_unresolved]

    def raise_for_unresolved(self) -> None:
        """
        Raise if any conflict was left for manual resolution.
        
        Raises:
            ConflictUnresolved: naming the first unresolved record
        """
        unresolved = self.unresolved_conflicts
        if unresolved:
            raise ConflictUnresolved(unresolved[0].record_id)

    def merge(self, other: "StateSyncResult") -> None:
        """Fold a phase result into this one."""
        self.synced.extend(other.synced)
        self.failed.extend(other.failed)
        self.conflicts.extend(other.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "direction": self.direction,
            "rejected": self.rejected,
            "started_at": format_timestamp(self.started_at),
            "completed_at": format_timestamp(self.completed_at),
            "synced": list(self.synced),
            "failed": [f.to_dict() for f in self.failed],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [f"Sync Result ({self.direction})"]
        if self.completed_at:
            lines.append(f"  Duration: {(self.completed_at - self.started_at).total_seconds():.1f}s")
        lines.extend([
            f"  Success: {self.success}",
            f"  Synced: {len(self.synced)}",
            f"  Conflicts: {len(self.conflicts)} ({len(self.unresolved_conflicts)} unresolved)",
            f"  Failed: {len(self.failed)}",
        ])
        for failure in self.failed:
            lines.append(f"    - {failure}")
        return "\n".join(lines)


@dataclass
class SyncOptions:
    """
    Per-call sync options.
    
    Attributes:
        direction: Which phases to run
        force: Push every record to every adapter regardless of syncedTo
        include_types: Only consider records of these types
        exclude_types: Skip records of these types
        conflict_resolution: Override the engine's default policy
    """
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    force: bool = False
    include_types: Optional[List[str]] = None
    exclude_types: Optional[List[str]] = None
    conflict_resolution: Optional[ConflictResolution] = None

    def accepts_type(self, record_type: str) -> bool:
        if self.include_types is not None and record_type not in self.include_types:
            return False
        if self.exclude_types and record_type in self.exclude_types:
            return False
        return True


@dataclass
class SyncStatus:
    """Observability snapshot returned by get_sync_status()."""
    last_sync: Optional[str]
    record_count: int
    pending_sync: int
    hash: str
    in_progress: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_sync": self.last_sync,
            "record_count": self.record_count,
            "pending_sync": self.pending_sync,
            "hash": self.hash,
            "in_progress": self.in_progress,
        }
