"""
Layered (multi-round) hash construction.

Seven rounds cycle through SHA-256, SHA-384 and SHA-512. Each round derives
its own salt from the base salt, the round index and a prefix of the running
result, hashes iteratively with a geometrically growing iteration count, and
mixes its output back into the running result. A final SHA-512 pass produces
the visible value.

This adds brute-force cost through repeated mixing. It is not a vetted
password-hashing KDF and carries no proven security reduction; use
scrypt/argon2 where a real KDF is required.
"""

import hashlib
import logging
import math

from .digest import SUPPORTED_ALGORITHMS, generate_salt


logger = logging.getLogger(__name__)

LAYERED_ROUNDS = 7
ROUND_GROWTH = 1.5
DEFAULT_BASE_ROUNDS = 10_000


def _hex(algorithm: str, value: str) -> str:
    return hashlib.new(algorithm, value.encode("utf-8")).hexdigest()


def round_iterations(base_rounds: int, round_index: int) -> int:
    """Iterations applied in a given round: floor(base * 1.5 ** round)."""
    return int(math.floor(base_rounds * ROUND_GROWTH ** round_index))


def layered_hash(data: str, salt: str = "", base_rounds: int = DEFAULT_BASE_ROUNDS) -> str:
    """
    Compute the layered hash of `data`.
    
    Args:
        data: Input string
        salt: Base salt; a random one is generated when empty, in which
            case the caller cannot recompute the value later
        base_rounds: Iterations of the first round
        
    Returns:
        Hex-encoded SHA-512 of the accumulated result
    """
    result = data
    salt = salt or generate_salt(32)
    logger.debug(f"Layered hash: {LAYERED_ROUNDS} rounds, base_rounds={base_rounds}")

    for round_index in range(LAYERED_ROUNDS):
        algorithm = SUPPORTED_ALGORITHMS[round_index % len(SUPPORTED_ALGORITHMS)]
        round_salt = _hex("sha256", f"{salt}:round:{round_index}:{result[:16]}")

        round_result = f"{result}:{round_salt}"
        for _ in range(round_iterations(base_rounds, round_index)):
            round_result = _hex(algorithm, round_result)

        result = _hex(algorithm, f"{result}:{round_result}")

    return _hex("sha512", result)
