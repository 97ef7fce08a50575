"""
Periodic background sync.

AutoSyncScheduler runs SyncEngine.sync() on a fixed period from a daemon
thread. Nothing starts at import time; callers start and stop it explicitly.
"""

import logging
import threading
from typing import Optional

from ..core.models import StateSyncResult, SyncDirection, SyncOptions
from .engine import SyncEngine


logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """
    Repeating sync task with skip-if-busy semantics.
    
    The first tick is a pull-only sync; every later tick runs `options`
    (bidirectional by default). A tick that finds a sync already running is
    skipped rather than queued.
    """

    def __init__(
        self,
        engine: SyncEngine,
        interval_seconds: float = 30.0,
        options: Optional[SyncOptions] = None,
        initial_pull: bool = True,
    ):
        """
        Initialize the scheduler.
        
        Args:
            engine: Engine to drive
            interval_seconds: Seconds between ticks
            options: Options for periodic syncs
            initial_pull: Run a pull-only sync immediately on start
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.engine = engine
        self.interval_seconds = interval_seconds
        self.options = options or SyncOptions(direction=SyncDirection.BIDIRECTIONAL)
        self.initial_pull = initial_pull

        self.last_result: Optional[StateSyncResult] = None
        self.runs = 0
        self.skipped = 0

        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread (no-op if already running)."""
        if self.is_running:
            if not self._shutdown_event.is_set():
                return
            # A stopped loop is still finishing its last sync
            self._thread.join()
        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._run, name="statesync-autosync", daemon=True)
        self._thread.start()
        logger.info(f"Auto-sync started (interval={self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop scheduling new syncs and wait for the thread to exit.
        
        A sync already running is not cancelled; it finishes first.
        """
        self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Auto-sync thread still running after {timeout}s; it exits after the current sync")
                return
            self._thread = None
        logger.info("Auto-sync stopped")

    def tick(self, options: Optional[SyncOptions] = None) -> Optional[StateSyncResult]:
        """Run one scheduled sync unless the engine is busy."""
        if self.engine.in_progress:
            self.skipped += 1
            logger.debug("Auto-sync tick skipped: sync in progress")
            return None

        result = self.engine.sync(options or self.options)
        if result.rejected:
            self.skipped += 1
            return None

        self.runs += 1
        self.last_result = result
        if not result.success:
            logger.warning(f"Auto-sync finished with {len(result.failed)} failures")
        return result

    def _run(self) -> None:
        if self.initial_pull and not self._shutdown_event.is_set():
            self.tick(SyncOptions(direction=SyncDirection.PULL))

        while not self._shutdown_event.wait(self.interval_seconds):
            self.tick()

    def __enter__(self) -> "AutoSyncScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
