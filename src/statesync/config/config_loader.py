"""
Configuration loader for state synchronization.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from ..adapters.file_store import FileStoreAdapter
from ..adapters.http_kv import DEFAULT_BASE_URL, HttpKeyValueAdapter
from ..adapters.memory import InMemoryAdapter
from ..core.adapter import RemoteStoreAdapter
from ..core.models import ConflictResolution
from ..hashing.digest import check_algorithm


logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "state": {
        "file": ".state/local.json",
        "key": "statesync_state",
        "encryption": {
            "enabled": False,
            "key_source": "env",
            "key_env_var": "STATE_ENCRYPTION_KEY",
            "key_file": None,
        },
    },
    "sync": {
        "interval_seconds": 30.0,
        "conflict_resolution": "latest",
        "max_workers": None,
    },
    "hashing": {
        "algorithm": "sha256",
        "iterations": 100000,
    },
    "adapters": [],
}

# env var -> (dotted config path, converter)
ENV_OVERRIDES = {
    "STATE_FILE": ("state.file", str),
    "STATE_KEY": ("state.key", str),
    "STATE_SYNC_INTERVAL_SECONDS": ("sync.interval_seconds", float),
    "STATE_CONFLICT_RESOLUTION": ("sync.conflict_resolution", str),
    "HASH_ALGORITHM": ("hashing.algorithm", str),
    "HASH_ITERATIONS": ("hashing.iterations", int),
}


class SyncConfig:
    """
    Configuration for state synchronization.
    
    Loads a YAML file (or built-in defaults), a `.env` file, then applies
    environment variable overrides. Values already in the shell environment
    win over `.env`.
    """

    def __init__(self, config_path: Optional[Path] = None, env_file: Optional[Path] = None):
        """
        Initialize configuration.
        
        Args:
            config_path: Path to YAML config file (optional)
            env_file: Path to a .env file (defaults to searching from the
                working directory)
        """
        self.config_path = Path(config_path) if config_path else None
        load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True), override=False)
        self.config = self._load_config() if self.config_path else copy.deepcopy(DEFAULT_CONFIG)
        self._apply_env_overrides()
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file, layered over the defaults."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}

        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {self.config_path} must contain a mapping")

        return _deep_merge(copy.deepcopy(DEFAULT_CONFIG), loaded)

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_var, (path, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if not raw:
                continue
            try:
                self._set(path, convert(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid {env_var}={raw!r}")

        if os.environ.get("STATE_ENCRYPTION_KEY"):
            self._set("state.encryption.enabled", True)

        base_url = os.environ.get("EDGE_KV_BASE_URL")
        api_token = os.environ.get("EDGE_KV_API_TOKEN")
        namespace = os.environ.get("EDGE_KV_NAMESPACE")
        if base_url or api_token or namespace:
            http_entries = [a for a in self.get_adapters() if a.get("type") == "http_kv"]
            if not http_entries:
                http_entries = [{"type": "http_kv", "name": "edge"}]
                self.config.setdefault("adapters", []).extend(http_entries)
            for entry in http_entries:
                if base_url:
                    entry["base_url"] = base_url
                if api_token:
                    entry["api_token"] = api_token
                if namespace:
                    entry["namespace"] = namespace

    def _validate(self) -> None:
        ConflictResolution(self.get("sync.conflict_resolution"))
        check_algorithm(self.get("hashing.algorithm"), allow_layered=True)
        if float(self.get("sync.interval_seconds")) <= 0:
            raise ValueError("sync.interval_seconds must be positive")

        names = [a.get("name") or a.get("type") for a in self.get_adapters()]
        if len(set(names)) != len(names):
            raise ValueError(f"Adapter names must be unique: {names}")

    def _set(self, key: str, value: Any) -> None:
        keys = key.split(".")
        target = self.config
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    def get_state_config(self) -> Dict[str, Any]:
        """Get local state configuration."""
        return self.config.get("state", {})

    def get_sync_config(self) -> Dict[str, Any]:
        """Get sync engine configuration."""
        return self.config.get("sync", {})

    def get_hashing_config(self) -> Dict[str, Any]:
        """Get hashing configuration."""
        return self.config.get("hashing", {})

    def get_adapters(self) -> List[Dict[str, Any]]:
        """Get list of adapter configurations."""
        return self.config.get("adapters") or []

    @property
    def state_file(self) -> Path:
        return Path(self.get("state.file", DEFAULT_CONFIG["state"]["file"]))

    @property
    def state_key(self) -> str:
        return self.get("state.key", DEFAULT_CONFIG["state"]["key"])

    @property
    def conflict_resolution(self) -> ConflictResolution:
        return ConflictResolution(self.get("sync.conflict_resolution", "latest"))

    @property
    def interval_seconds(self) -> float:
        return float(self.get("sync.interval_seconds", 30.0))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def build_adapters(self) -> List[RemoteStoreAdapter]:
        """
        Instantiate adapters from the `adapters:` list, in order.
        
        Raises:
            ValueError: on an unknown adapter type or a missing setting
        """
        adapters: List[RemoteStoreAdapter] = []
        for entry in self.get_adapters():
            adapter_type = entry.get("type")
            name = entry.get("name") or adapter_type

            if adapter_type == "memory":
                adapters.append(InMemoryAdapter(name=name))

            elif adapter_type == "file":
                base_dir = entry.get("base_dir")
                if not base_dir:
                    raise ValueError(f"Adapter {name}: 'base_dir' is required")
                adapters.append(FileStoreAdapter(name=name, base_dir=Path(base_dir)))

            elif adapter_type == "http_kv":
                namespace = entry.get("namespace")
                if not namespace:
                    raise ValueError(f"Adapter {name}: 'namespace' is required")
                adapters.append(HttpKeyValueAdapter(
                    name=name,
                    base_url=entry.get("base_url") or DEFAULT_BASE_URL,
                    api_token=entry.get("api_token", ""),
                    account_id=entry.get("account_id", ""),
                    namespace=namespace,
                    timeout=int(entry.get("timeout", 30)),
                    max_retries=int(entry.get("max_retries", 3)),
                    base_backoff_seconds=float(entry.get("base_backoff_seconds", 1.0)),
                    rate_limit_delay=float(entry.get("rate_limit_delay", 0.0)),
                ))

            else:
                raise ValueError(f"Unknown adapter type for {name}: {adapter_type!r}")

            logger.debug(f"Configured adapter {name} ({adapter_type})")

        return adapters


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base
