"""
Error taxonomy for state synchronization.

Adapter-scoped errors never escape SyncEngine.sync(); they are converted
into FailedOperation entries on the result.
"""

from typing import Optional


class StateSyncError(Exception):
    """Base class for all statesync errors."""


class IntegrityError(StateSyncError):
    """
    A fingerprint does not match the data it claims to describe.
    
    Always fatal to the operation that detected it and never retryable
    within the same sync call.
    """

    retryable = False

    def __init__(self, message: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class AdapterError(StateSyncError):
    """
    Failure talking to a remote store.
    
    Attributes:
        adapter: Name of the adapter that failed
        retryable: True for network/rate-limit class failures,
            False for auth/validation/parse class failures
        status_code: HTTP status code when the adapter is HTTP based
    """

    def __init__(
        self,
        message: str,
        adapter: str = "",
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.adapter = adapter
        self.retryable = retryable
        self.status_code = status_code


class ConcurrentSyncRejected(StateSyncError):
    """A sync was requested while another sync is still in flight."""

    retryable = True


class ConflictUnresolved(StateSyncError):
    """
    A conflict left pending under the manual policy.
    
    Not raised by the engine. StateSyncResult.raise_for_unresolved() raises
    it for callers that require every conflict of a result to be resolved.
    """

    def __init__(self, record_id: str):
        super().__init__(f"Conflict for record {record_id} requires manual resolution")
        self.record_id = record_id


class UnsupportedAlgorithmError(StateSyncError, ValueError):
    """Requested digest algorithm is not one of the supported ones."""
