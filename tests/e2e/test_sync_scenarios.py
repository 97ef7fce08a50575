"""
End-to-end synchronization scenarios.

Several replicas share remote stores (in-memory and file based) and sync
through them the way independent processes would.
"""

import threading

import pytest

from statesync.adapters import FileStoreAdapter, InMemoryAdapter
from statesync.core.models import ConflictResolution, SyncDirection, SyncOptions
from statesync.hashing.canonical import fingerprint
from statesync.store import RecordStore, load_store, save_store
from statesync.sync import DEFAULT_STATE_KEY, SyncEngine


pytestmark = pytest.mark.e2e


@pytest.fixture
def shared(tmp_path):
    """Two remote stores shared by every replica in a test."""
    return [InMemoryAdapter("edge"), FileStoreAdapter("disk", tmp_path / "disk")]


def _replica(adapters, policy="latest"):
    store = RecordStore()
    return store, SyncEngine(store, adapters, conflict_resolution=policy)


class TestReplication:
    """Records flow between replicas through shared stores."""
    
    def test_create_sync_and_receive(self, shared):
        """Test that a record created on one replica reaches another."""
        store_a, engine_a = _replica(shared)
        store_b, engine_b = _replica(shared)
        record = store_a.create("customer", {"name": "Ada"})
        
        pushed = engine_a.sync()
        pulled = engine_b.sync(direction="pull")
        
        assert pushed.success and pulled.success
        received = store_b.get(record.id)
        assert received.data == {"name": "Ada"}
        assert received.fingerprint == record.fingerprint
        assert received.synced_to == {"edge", "disk"}
        assert store_a.get(record.id).synced_to == {"edge", "disk"}
    
    def test_update_invalidates_sync(self, shared):
        """Test that a local edit changes the fingerprint and needs a new push."""
        store, engine = _replica(shared)
        record = store.create("customer", {"name": "Ada"})
        engine.sync()
        
        updated = store.update(record.id, {"name": "Ada Lovelace"})
        
        assert updated.fingerprint != record.fingerprint
        assert updated.version == record.version + 1
        assert updated.synced_to == set()
        assert engine.get_sync_status().pending_sync == 1
        
        engine.sync()
        assert store.get(record.id).synced_to == {"edge", "disk"}
    
    def test_deployment_update_scenario(self, shared):
        """Test fingerprint, version and syncedTo after editing a synced record."""
        store, engine = _replica(shared)
        record = store.create("deployment", {"app": "x", "env": "prod"})
        engine.sync()
        original = store.get(record.id)
        assert original.synced_to == {"edge", "disk"}

        updated = store.update(record.id, {"env": "staging"})

        assert updated.fingerprint != original.fingerprint
        assert updated.fingerprint == fingerprint({"app": "x", "env": "staging"})
        assert updated.version == original.version + 1
        assert updated.synced_to == set()

    def test_edit_propagates_under_latest(self, shared):
        """Test that the newer edit wins on the other replica."""
        store_a, engine_a = _replica(shared)
        store_b, engine_b = _replica(shared)
        record = store_a.create("customer", {"name": "Ada"})
        engine_a.sync()
        engine_b.sync()
        
        store_a.update(record.id, {"name": "Ada Lovelace"})
        engine_a.sync()
        result = engine_b.sync()
        
        assert store_b.get(record.id).data == {"name": "Ada Lovelace"}
        assert all(c.resolution == ConflictResolution.REMOTE for c in result.conflicts)
    
    def test_repeated_pull_is_idempotent(self, shared):
        """Test that pulling unchanged remote state changes nothing."""
        store_a, engine_a = _replica(shared)
        store_b, engine_b = _replica(shared)
        for i in range(5):
            store_a.create("customer", {"n": i})
        engine_a.sync()
        
        engine_b.sync(direction="pull")
        first = store_b.records_document()
        second_result = engine_b.sync(direction="pull")
        
        assert store_b.records_document() == first
        assert second_result.conflicts == []
        assert second_result.synced == []


class TestConflicts:
    """Conflict policies across replicas."""
    
    def test_later_adapter_wins_under_remote(self):
        """Test deterministic outcome when two stores disagree."""
        edge, crm = InMemoryAdapter("edge"), InMemoryAdapter("crm")
        store_a, engine_a = _replica([edge])
        store_b, engine_b = _replica([crm])
        record = store_a.create("customer", {"v": "edge"})
        engine_a.sync()
        store_b.replace(store_a.get(record.id))
        store_b.update(record.id, {"v": "crm"})
        engine_b.sync()
        
        store_c, engine_c = _replica([edge, crm], policy="remote")
        store_c.replace(store_a.get(record.id))
        store_c.update(record.id, {"v": "local"})
        result = engine_c.sync(direction="pull")
        
        local = store_c.get(record.id)
        assert local.data == {"v": "crm"}
        assert local.synced_to == {"crm"}
        assert [c.adapter for c in result.conflicts] == ["edge", "crm"]
        assert local.version >= 3
    
    def test_latest_is_deterministic(self):
        """Test that two identical runs resolve the same way."""
        outcomes = []
        for _ in range(2):
            edge = InMemoryAdapter("edge")
            store, engine = _replica([edge])
            record = store.create("customer", {"name": "local"})
            remote = store.get(record.id)
            remote.data = {"name": "remote"}
            remote.fingerprint = fingerprint(remote.data)
            edge.put_document(DEFAULT_STATE_KEY, {
                "records": {record.id: remote.to_dict()},
                "lastSync": None,
                "hash": None,
            })
            
            result = engine.sync(direction="pull")
            
            outcomes.append((store.get(record.id).data, result.conflicts[0].resolution))
        
        assert outcomes[0] == outcomes[1]
        assert outcomes[0] == ({"name": "local"}, ConflictResolution.LOCAL)
    
    def test_manual_conflicts_leave_both_sides(self, shared):
        """Test that manual resolution touches neither side."""
        store_a, engine_a = _replica(shared)
        store_b, engine_b = _replica(shared, policy="manual")
        record = store_a.create("customer", {"name": "A"})
        engine_a.sync()
        store_b.replace(store_a.get(record.id))
        store_b.update(record.id, {"name": "B"})
        
        result = engine_b.sync(direction="pull")
        
        assert store_b.get(record.id).data == {"name": "B"}
        assert len(result.unresolved_conflicts) == 2
        assert shared[0].blobs[DEFAULT_STATE_KEY].parse()["records"][record.id]["data"] == {"name": "A"}


class TestFailures:
    """Partial failures and concurrency."""
    
    def test_partial_failure_then_recovery(self, shared):
        """Test that a store that was down catches up on the next sync."""
        edge, disk = shared
        store, engine = _replica(shared)
        record = store.create("customer", {"name": "Ada"})
        edge.fail_next_store = ConnectionError("edge down")
        
        first = engine.sync()
        
        assert not first.success
        assert [f.adapter for f in first.failed] == ["edge"]
        assert store.get(record.id).synced_to == {"disk"}
        
        second = engine.sync()
        
        assert second.success
        assert store.get(record.id).synced_to == {"edge", "disk"}
    
    def test_concurrent_sync_rejected(self):
        """Test that only one sync runs at a time and nothing leaks from the rejected one."""
        slow = InMemoryAdapter("slow")
        slow.gate = threading.Event()
        store, engine = _replica([slow])
        record = store.create("customer", {"name": "Ada"})
        results = []
        
        worker = threading.Thread(target=lambda: results.append(engine.sync()))
        worker.start()
        assert slow.entered.wait(5)
        
        rejected = engine.sync(SyncOptions(direction=SyncDirection.PUSH, force=True))
        slow.gate.set()
        worker.join(5)
        
        assert rejected.rejected
        assert rejected.synced == []
        assert results[0].success
        assert store.get(record.id).synced_to == {"slow"}
        assert slow.store_calls == [DEFAULT_STATE_KEY]


class TestPersistence:
    """State survives a restart through the local state file."""
    
    def test_export_import_round_trip(self, tmp_path, shared):
        """Test that a restarted replica keeps ids, payloads and versions."""
        store, engine = _replica(shared)
        record = store.create("customer", {"name": "Ada"})
        store.update(record.id, {"tier": "gold"})
        engine.sync()
        path = tmp_path / "state" / "local.json"
        save_store(store, path, encryption_key=b"passphrase")
        
        restored = load_store(path, encryption_key=b"passphrase")
        
        again = restored.get(record.id)
        assert again.data == {"name": "Ada", "tier": "gold"}
        assert again.version == 2
        assert again.fingerprint == store.get(record.id).fingerprint
        assert again.synced_to == set()
        assert restored.last_sync == store.last_sync
        
        result = SyncEngine(restored, shared).sync()
        assert result.success
        assert result.conflicts == []
        assert restored.get(record.id).synced_to == {"edge", "disk"}
