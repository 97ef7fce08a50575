"""
Conflict resolution policy.
"""

from typing import Optional, Union

from ..core.models import ConflictResolution, StateRecord


def coerce_policy(policy: Union[ConflictResolution, str]) -> ConflictResolution:
    """Accept either the enum or its string value."""
    if isinstance(policy, ConflictResolution):
        return policy
    return ConflictResolution(str(policy).lower())


def resolve_conflict(
    local: StateRecord,
    remote: StateRecord,
    policy: Union[ConflictResolution, str],
) -> Optional[ConflictResolution]:
    """
    Decide which side of a conflict wins.
    
    Args:
        local: Local record
        remote: Remote record with a different fingerprint
        policy: 'local', 'remote', 'latest' or 'manual'
        
    Returns:
        ConflictResolution.LOCAL or .REMOTE, or None when the conflict is
        left for the caller (manual policy)
    """
    policy = coerce_policy(policy)

    if policy == ConflictResolution.LOCAL:
        return ConflictResolution.LOCAL

    if policy == ConflictResolution.REMOTE:
        return ConflictResolution.REMOTE

    if policy == ConflictResolution.LATEST:
        # Equal timestamps keep local
        if local.updated_at >= remote.updated_at:
            return ConflictResolution.LOCAL
        return ConflictResolution.REMOTE

    return None
