"""
Digest primitives and salted/iterated hashing.

Provides:
- sha256/sha384/sha512 and a generic digest() with algorithm validation
- hash_value()/verify() for salted, iterated hashes with constant-time checks
- hmac_hash(), hash_chain(), hash_id()
- hash_file()/hash_directory() for integrity checks on disk
"""

import base64
import hashlib
import hmac
import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import UnsupportedAlgorithmError


logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ("sha256", "sha384", "sha512")
LAYERED_ALGORITHM = "layered"
SUPPORTED_ENCODINGS = ("hex", "base64", "base64url")

DEFAULT_ITERATIONS = 100_000
GENESIS_HASH = "0" * 64

BytesLike = Union[str, bytes]


def _to_bytes(data: BytesLike) -> bytes:
    if isinstance(data, bytes):
        return data
    return data.encode("utf-8")


def check_algorithm(algorithm: str, allow_layered: bool = False) -> str:
    """
    Validate an algorithm name before any hashing happens.
    
    Raises:
        UnsupportedAlgorithmError: if the name is not supported
    """
    name = (algorithm or "").lower()
    if name in SUPPORTED_ALGORITHMS:
        return name
    if allow_layered and name == LAYERED_ALGORITHM:
        return name
    raise UnsupportedAlgorithmError(f"Unsupported hash algorithm: {algorithm!r}")


def _encode(raw: bytes, encoding: str) -> str:
    if encoding == "hex":
        return raw.hex()
    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    if encoding == "base64url":
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
    raise ValueError(f"Unsupported encoding: {encoding!r}")


def digest(data: BytesLike, algorithm: str = "sha256", encoding: str = "hex") -> str:
    """
    Hash data with one of the supported SHA-2 algorithms.
    
    Args:
        data: String (UTF-8 encoded) or bytes to hash
        algorithm: 'sha256', 'sha384' or 'sha512'
        encoding: 'hex', 'base64' or 'base64url'
        
    Returns:
        Encoded digest string
    """
    name = check_algorithm(algorithm)
    if encoding not in SUPPORTED_ENCODINGS:
        raise ValueError(f"Unsupported encoding: {encoding!r}")
    return _encode(hashlib.new(name, _to_bytes(data)).digest(), encoding)


def sha256(data: BytesLike, encoding: str = "hex") -> str:
    return digest(data, "sha256", encoding)


def sha384(data: BytesLike, encoding: str = "hex") -> str:
    return digest(data, "sha384", encoding)


def sha512(data: BytesLike, encoding: str = "hex") -> str:
    return digest(data, "sha512", encoding)


def generate_salt(length: int = 32) -> str:
    """Return `length` cryptographically random bytes as hex."""
    return secrets.token_hex(length)


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two digests without short-circuiting on the first difference."""
    return hmac.compare_digest(_to_bytes(a), _to_bytes(b))


@dataclass
class HashResult:
    """
    A salted hash together with everything needed to recompute it.
    
    Attributes:
        hash: Encoded hash value
        algorithm: Algorithm name (a SHA-2 size or 'layered')
        iterations: Iteration count (base rounds for 'layered')
        salt: Salt mixed into the input
        timestamp: Creation time in epoch milliseconds
        encoding: Encoding of `hash` ('hex', 'base64' or 'base64url')
    """
    hash: str
    algorithm: str
    iterations: int
    salt: str
    timestamp: int = 0
    encoding: str = "hex"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "algorithm": self.algorithm,
            "iterations": self.iterations,
            "salt": self.salt,
            "timestamp": self.timestamp,
            "encoding": self.encoding,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HashResult":
        return cls(
            hash=data["hash"],
            algorithm=data["algorithm"],
            iterations=int(data.get("iterations", 1)),
            salt=data.get("salt", ""),
            timestamp=int(data.get("timestamp", 0)),
            encoding=data.get("encoding", "hex"),
        )


@dataclass
class HashVerification:
    """Outcome of verify()."""
    valid: bool
    result: HashResult


def hash_value(
    data: str,
    algorithm: str = "sha256",
    iterations: int = DEFAULT_ITERATIONS,
    salt: Optional[str] = None,
    encoding: str = "hex",
) -> HashResult:
    """
    Salted, iterated hash of `data`.
    
    Standard algorithms hash "{data}:{salt}" and then re-hash the hex
    digest `iterations` times. The 'layered' algorithm delegates to
    layered_hash() with `iterations` as its base round count.
    The hex result is re-encoded when another `encoding` is requested.
    
    Args:
        data: Input string
        algorithm: SHA-2 size name or 'layered'
        iterations: Iteration count (at least 1)
        salt: Salt (random 32-byte hex when omitted)
        encoding: 'hex', 'base64' or 'base64url'
        
    Returns:
        HashResult recording algorithm, iterations and salt
    """
    name = check_algorithm(algorithm, allow_layered=True)
    if encoding not in SUPPORTED_ENCODINGS:
        raise ValueError(f"Unsupported encoding: {encoding!r}")
    iterations = max(1, int(iterations))
    salt = salt or generate_salt(32)

    if name == LAYERED_ALGORITHM:
        from .layered import layered_hash
        value = layered_hash(data, salt, iterations)
    else:
        value = f"{data}:{salt}"
        for _ in range(iterations):
            value = hashlib.new(name, value.encode("utf-8")).hexdigest()

    if encoding != "hex":
        value = _encode(bytes.fromhex(value), encoding)

    return HashResult(
        hash=value,
        algorithm=name,
        iterations=iterations,
        salt=salt,
        timestamp=int(time.time() * 1000),
        encoding=encoding,
    )


def verify(data: str, expected: HashResult) -> HashVerification:
    """
    Recompute a hash with the recorded parameters and compare in constant time.
    
    Args:
        data: Candidate input
        expected: HashResult produced by hash_value()
        
    Returns:
        HashVerification with `valid` set accordingly
    """
    recomputed = hash_value(
        data,
        algorithm=expected.algorithm,
        iterations=expected.iterations,
        salt=expected.salt,
        encoding=expected.encoding,
    )
    return HashVerification(
        valid=constant_time_equals(recomputed.hash, expected.hash),
        result=expected,
    )


def hmac_hash(data: BytesLike, key: BytesLike, algorithm: str = "sha256") -> str:
    """HMAC of `data` under `key`, hex encoded."""
    name = check_algorithm(algorithm)
    return hmac.new(_to_bytes(key), _to_bytes(data), name).hexdigest()


def hash_chain(items: List[str], previous_hash: str = GENESIS_HASH) -> Tuple[List[str], str]:
    """
    Build a linked hash chain where each link commits to its predecessor.
    
    Returns:
        (chain, final_hash); final_hash is `previous_hash` for empty input
    """
    chain: List[str] = []
    current = previous_hash
    for item in items:
        current = sha256(f"{current}:{item}")
        chain.append(current)
    return chain, current


def _base36(value: int) -> str:
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(chars[rem])
    return "".join(reversed(out))


def hash_id(prefix: str = "sr") -> str:
    """
    Generate an opaque identifier from the current time and a random salt.
    
    Collisions are practically impossible, not structurally prevented.
    """
    stamp = _base36(int(time.time() * 1000))
    nonce = secrets.token_hex(8)
    return f"{prefix}_{sha256(f'{stamp}:{nonce}')[:12]}"


def hash_file(path: Path, algorithm: str = "sha256") -> Dict[str, Any]:
    """Hash a file's bytes."""
    name = check_algorithm(algorithm)
    path = Path(path)
    hasher = hashlib.new(name)
    size = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
            size += len(chunk)
    return {
        "path": str(path),
        "hash": hasher.hexdigest(),
        "algorithm": name,
        "size": size,
        "timestamp": int(time.time() * 1000),
    }


def hash_directory(path: Path, algorithm: str = "sha256") -> Dict[str, Any]:
    """
    Hash every file under a directory.
    
    Dot-directories are skipped. The combined hash covers the sorted
    "path:hash" lines; the Merkle root covers the per-file hashes in the
    same order.
    """
    from .merkle import merkle_root

    name = check_algorithm(algorithm)
    root = Path(path)
    files: List[Dict[str, Any]] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for filename in filenames:
            file_path = Path(dirpath) / filename
            files.append({"path": str(file_path), "hash": hash_file(file_path, name)["hash"]})

    files.sort(key=lambda f: f["path"])
    combined = "\n".join(f"{f['path']}:{f['hash']}" for f in files)
    logger.debug(f"Hashed {len(files)} files under {root}")

    return {
        "directory": str(root),
        "file_count": len(files),
        "combined_hash": digest(combined, name),
        "merkle_root": merkle_root([f["hash"] for f in files]),
        "files": files,
        "algorithm": name,
        "timestamp": int(time.time() * 1000),
    }
