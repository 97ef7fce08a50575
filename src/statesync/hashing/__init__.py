"""
Content-addressable hashing layer.

This module provides:
- Digest primitives (SHA-256/384/512) and salted, iterated hashing
- Canonical fingerprints for record payloads
- The layered multi-round hash construction
- Merkle aggregation of fingerprints
"""

from .digest import (
    SUPPORTED_ALGORITHMS,
    HashResult,
    HashVerification,
    constant_time_equals,
    digest,
    generate_salt,
    hash_chain,
    hash_directory,
    hash_file,
    hash_id,
    hash_value,
    hmac_hash,
    sha256,
    sha384,
    sha512,
    verify,
)
from .canonical import canonicalize, fingerprint
from .layered import layered_hash
from .merkle import merkle_root

__all__ = [
    "SUPPORTED_ALGORITHMS",
    "HashResult",
    "HashVerification",
    "constant_time_equals",
    "digest",
    "generate_salt",
    "hash_chain",
    "hash_directory",
    "hash_file",
    "hash_id",
    "hash_value",
    "hmac_hash",
    "sha256",
    "sha384",
    "sha512",
    "verify",
    "canonicalize",
    "fingerprint",
    "layered_hash",
    "merkle_root",
]
