"""
Local state file persistence.

The state file is the export document ({"records", "lastSync", "hash"}).
When an encryption key is configured the file holds a short magic header,
a 12-byte nonce and the AES-256-GCM ciphertext of the JSON document.
"""

import getpass
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import IntegrityError
from .record_store import RecordStore


logger = logging.getLogger(__name__)

ENCRYPTED_MAGIC = b"SSENC1"
NONCE_SIZE = 12


def _normalize_key(key: bytes) -> bytes:
    # AES-256 needs exactly 32 bytes
    if len(key) != 32:
        return hashlib.sha256(key).digest()
    return key


def encrypt_bytes(data: bytes, key: bytes) -> bytes:
    """Encrypt with AES-256-GCM; output is magic + nonce + ciphertext."""
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(_normalize_key(key)).encrypt(nonce, data, None)
    return ENCRYPTED_MAGIC + nonce + ciphertext


def decrypt_bytes(data: bytes, key: bytes) -> bytes:
    """
    Reverse encrypt_bytes().
    
    Raises:
        IntegrityError: if the ciphertext fails authentication (wrong key or
            tampered file)
    """
    body = data[len(ENCRYPTED_MAGIC):]
    nonce, ciphertext = body[:NONCE_SIZE], body[NONCE_SIZE:]
    try:
        return AESGCM(_normalize_key(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise IntegrityError("Encrypted state file failed authentication") from e


def is_encrypted(data: bytes) -> bool:
    return data.startswith(ENCRYPTED_MAGIC)


def save_state_file(path: Path, document: Dict[str, Any], encryption_key: Optional[bytes] = None) -> Path:
    """
    Write a state document atomically (temp file + rename).
    
    Args:
        path: Destination file
        document: Export document
        encryption_key: Encrypt the file when given
        
    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    raw = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
    if encryption_key:
        raw = encrypt_bytes(raw, encryption_key)

    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(raw)
        os.replace(temp_path, path)
    except OSError:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise

    logger.info(f"State saved to {path} ({len(raw)} bytes{', encrypted' if encryption_key else ''})")
    return path


def load_state_file(path: Path, encryption_key: Optional[bytes] = None) -> Dict[str, Any]:
    """
    Read a state document.
    
    Returns:
        The document, or an empty document when the file does not exist
        
    Raises:
        ValueError: if the file is encrypted and no key was given, or is not
            a JSON object
    """
    path = Path(path)
    if not path.exists():
        return {"records": {}, "lastSync": None, "hash": None}

    raw = path.read_bytes()
    if is_encrypted(raw):
        if not encryption_key:
            raise ValueError(f"State file {path} is encrypted; an encryption key is required")
        raw = decrypt_bytes(raw, encryption_key)

    document = json.loads(raw.decode("utf-8"))
    if not isinstance(document, dict):
        raise ValueError(f"State file {path} does not contain a JSON object")
    return document


def load_store(path: Path, encryption_key: Optional[bytes] = None, verify: bool = True) -> RecordStore:
    """Build a RecordStore from a state file."""
    store = RecordStore()
    store.import_state(load_state_file(path, encryption_key), verify=verify)
    return store


def save_store(store: RecordStore, path: Path, encryption_key: Optional[bytes] = None) -> Path:
    """Persist a RecordStore's export document."""
    document = store.export_state()
    document.pop("exportedAt", None)
    return save_state_file(path, document, encryption_key)


def get_encryption_key(
    key_source: str = "env",
    key_env_var: str = "STATE_ENCRYPTION_KEY",
    key_file_path: Optional[str] = None,
    prompt: bool = False,
) -> Optional[bytes]:
    """
    Get encryption key from configured source.
    
    Args:
        key_source: Source type ('env', 'file', 'prompt')
        key_env_var: Environment variable name
        key_file_path: Path to key file
        prompt: Whether to prompt interactively
        
    Returns:
        Encryption key as bytes, or None if not available
    """
    if key_source == "env":
        key_str = os.environ.get(key_env_var)
        if key_str:
            return key_str.encode("utf-8")

    elif key_source == "file" and key_file_path:
        key_path = Path(key_file_path)
        if key_path.exists():
            return key_path.read_bytes().strip()

    elif key_source == "prompt" and prompt:
        key_str = getpass.getpass("Enter encryption key: ")
        if key_str:
            return key_str.encode("utf-8")

    return None
