"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)

ENV_VARS = (
    "STATE_FILE",
    "STATE_KEY",
    "STATE_SYNC_INTERVAL_SECONDS",
    "STATE_CONFLICT_RESOLUTION",
    "STATE_ENCRYPTION_KEY",
    "HASH_ALGORITHM",
    "HASH_ITERATIONS",
    "EDGE_KV_BASE_URL",
    "EDGE_KV_API_TOKEN",
    "EDGE_KV_NAMESPACE",
)


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "e2e: End-to-end sync scenarios across several adapters")
    config.addinivalue_line("markers", "slow: Tests that wait on timers or threads")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate os.environ so .env loading and overrides cannot leak between tests."""
    monkeypatch.setattr(os, "environ", os.environ.copy())
    for name in ENV_VARS:
        os.environ.pop(name, None)


@pytest.fixture
def store():
    """Fixture providing an empty record store."""
    from statesync.store import RecordStore

    return RecordStore()


@pytest.fixture
def edge():
    """Fixture providing an in-memory adapter named 'edge'."""
    from statesync.adapters import InMemoryAdapter

    return InMemoryAdapter(name="edge")


@pytest.fixture
def crm():
    """Fixture providing an in-memory adapter named 'crm'."""
    from statesync.adapters import InMemoryAdapter

    return InMemoryAdapter(name="crm")


@pytest.fixture
def make_remote_record():
    """Fixture building a serialized record as another writer would store it."""
    from statesync.core.models import StateRecord

    def _make(record_id: str, data: dict, record_type: str = "customer", version: int = 1,
              updated_at: str = "2024-01-01T00:00:00+00:00") -> dict:
        record = StateRecord.new(record_id, record_type, data)
        record.version = version
        raw = record.to_dict()
        raw["createdAt"] = "2024-01-01T00:00:00+00:00"
        raw["updatedAt"] = updated_at
        return raw

    return _make


@pytest.fixture
def remote_document():
    """Fixture building a remote state document from serialized records."""
    def _build(*records: dict, last_sync=None) -> dict:
        return {
            "records": {r["id"]: r for r in records},
            "lastSync": last_sync,
            "hash": None,
        }

    return _build
