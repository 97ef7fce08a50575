"""
Merkle aggregation of fingerprints.
"""

from typing import List, Sequence

from .digest import sha256

EMPTY_SENTINEL = "empty"


def merkle_root(hashes: Sequence[str]) -> str:
    """
    Fold a sequence of hashes into a single root.
    
    Adjacent hashes are paired and hashed as "left:right"; an odd trailing
    hash is paired with itself. The root is order-sensitive.
    
    Args:
        hashes: Hex digests in a caller-defined order
        
    Returns:
        Root hash; sha256("empty") for no input, the element itself for one
    """
    level: List[str] = list(hashes)
    if not level:
        return sha256(EMPTY_SENTINEL)

    while len(level) > 1:
        next_level = []
        for i in range(0, len(level), 2):
            left = level[i]
            right = level[i + 1] if i + 1 < len(level) else left
            next_level.append(sha256(f"{left}:{right}"))
        level = next_level

    return level[0]
