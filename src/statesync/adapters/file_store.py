"""
File-based remote store adapter.

Each key is one JSON file under `base_dir` holding the blob, its
fingerprint and a write timestamp. Writes are atomic (temp file + rename).
"""

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..core.adapter import RemoteBlob, RemoteStoreAdapter
from ..errors import AdapterError


logger = logging.getLogger(__name__)


class FileStoreAdapter(RemoteStoreAdapter):
    """
    Stores state blobs as JSON files.
    
    Files are organized as: {base_dir}/{sanitized key}.json
    """

    def __init__(self, name: str, base_dir: Path, create_dirs: bool = True):
        """
        Initialize the file store adapter.
        
        Args:
            name: Adapter name
            base_dir: Directory holding the key files
            create_dirs: Whether to create the directory automatically
        """
        self.name = name
        self.base_dir = Path(base_dir)
        if create_dirs:
            self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.base_dir / f"{self._sanitize_filename(key)}.json"

    @staticmethod
    def _sanitize_filename(name: str) -> str:
        """Sanitize a key for use as a filename."""
        sanitized = re.sub(r'[<>:"/\\|?*\s]', "_", name)
        return sanitized[:200] or "_"

    def retrieve(self, key: str) -> Optional[RemoteBlob]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = json.load(f)
            return RemoteBlob.from_dict(content)
        except OSError as e:
            raise AdapterError(f"read failed: {e}", adapter=self.name, retryable=True) from e
        except (ValueError, KeyError, TypeError) as e:
            raise AdapterError(f"parse error: {e}", adapter=self.name, retryable=False) from e

    def store(self, key: str, payload: RemoteBlob) -> None:
        path = self._path_for(key)
        content = dict(payload.to_dict(), updatedAt=datetime.now(timezone.utc).isoformat())

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(content, f, indent=2, ensure_ascii=False)
                os.replace(temp_path, path)
            except OSError:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            raise AdapterError(f"write failed: {e}", adapter=self.name, retryable=True) from e

        logger.debug(f"{self.name}: wrote {path}")

    def get_name(self) -> str:
        return self.name
