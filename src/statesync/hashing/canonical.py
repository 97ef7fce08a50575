"""
Canonical JSON serialization and content fingerprints.

The canonicalization ensures:
- Keys are sorted recursively at all levels
- No insignificant whitespace
- Consistent handling of datetimes, sets and objects with to_dict()

Two mappings with the same key/value pairs produce the same fingerprint no
matter how they were built. Strings are hashed exactly as given (no unicode
normalization), so any observable change alters the fingerprint.
"""

import json
from typing import Any, Mapping

from .digest import digest


def canonicalize(obj: Any) -> str:
    """
    Serialize an object to a stable JSON string.
    
    Args:
        obj: JSON-like value (dicts, lists, scalars)
        
    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=_canonical_default,
    )


def _canonical_default(obj: Any) -> Any:
    """
    Default handler for JSON serialization of non-standard types.
    """
    if hasattr(obj, "isoformat"):
        # datetime objects
        return obj.isoformat()

    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    if hasattr(obj, "to_dict"):
        return obj.to_dict()

    # Last resort: string conversion
    return str(obj)


def fingerprint(data: Mapping[str, Any], algorithm: str = "sha256") -> str:
    """
    Compute the content fingerprint of a record payload.
    
    Args:
        data: Payload mapping
        algorithm: Digest algorithm (sha256 by default)
        
    Returns:
        Hex digest of the canonical serialization
    """
    return digest(canonicalize(data), algorithm)
