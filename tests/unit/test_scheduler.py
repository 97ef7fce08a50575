"""
Unit tests for the auto-sync scheduler.
"""

import threading
import time

import pytest

from statesync.adapters.memory import InMemoryAdapter
from statesync.core.models import SyncDirection
from statesync.sync.engine import SyncEngine
from statesync.sync.scheduler import AutoSyncScheduler


def _wait_until(condition, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def engine(store, edge):
    return SyncEngine(store, [edge])


class TestAutoSyncScheduler:
    """Tests for AutoSyncScheduler."""
    
    def test_invalid_interval(self, engine):
        """Test that a non-positive interval is rejected."""
        with pytest.raises(ValueError):
            AutoSyncScheduler(engine, interval_seconds=0)
    
    def test_tick_runs_sync(self, engine, store, edge):
        """Test a single scheduled run."""
        store.create("customer", {"name": "Ada"})
        scheduler = AutoSyncScheduler(engine, interval_seconds=60)
        
        result = scheduler.tick()
        
        assert result is not None
        assert scheduler.runs == 1
        assert scheduler.last_result is result
        assert edge.store_calls
    
    def test_tick_skipped_while_busy(self, store):
        """Test skip-if-busy semantics."""
        slow = InMemoryAdapter("slow")
        slow.gate = threading.Event()
        engine = SyncEngine(store, [slow])
        scheduler = AutoSyncScheduler(engine, interval_seconds=60)
        
        worker = threading.Thread(target=engine.sync)
        worker.start()
        assert slow.entered.wait(5)
        
        assert scheduler.tick() is None
        assert scheduler.skipped == 1
        assert scheduler.runs == 0
        
        slow.gate.set()
        worker.join(5)
    
    @pytest.mark.slow
    def test_start_runs_initial_pull(self, engine, edge):
        """Test that starting the scheduler pulls immediately."""
        scheduler = AutoSyncScheduler(engine, interval_seconds=60)
        
        scheduler.start()
        try:
            assert _wait_until(lambda: scheduler.runs >= 1)
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)
        
        assert not scheduler.is_running
        assert scheduler.last_result.direction == SyncDirection.PULL.value
        assert edge.retrieve_calls
    
    @pytest.mark.slow
    def test_periodic_ticks(self, engine, store, edge):
        """Test that ticks repeat on the interval."""
        store.create("customer", {"name": "Ada"})
        
        with AutoSyncScheduler(engine, interval_seconds=0.05, initial_pull=False) as scheduler:
            assert _wait_until(lambda: scheduler.runs >= 2)
        
        assert not scheduler.is_running
        assert edge.store_calls
    
    @pytest.mark.slow
    def test_restart_while_last_sync_finishes(self, store):
        """Test that start() after a timed-out stop() never leaves two loops alive."""
        slow = InMemoryAdapter("slow")
        slow.gate = threading.Event()
        scheduler = AutoSyncScheduler(SyncEngine(store, [slow]), interval_seconds=60)
        
        scheduler.start()
        assert slow.entered.wait(5)
        scheduler.stop(timeout=0.05)
        
        assert scheduler.is_running
        
        slow.gate.set()
        scheduler.start()
        try:
            loops = [t for t in threading.enumerate()
                     if t.name == "statesync-autosync" and t.is_alive()]
            assert len(loops) == 1
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)
        
        assert not scheduler.is_running
