"""
Auto-Saver — debounced snapshot saving for the rules store.

Every ``schedule()`` call restarts a quiet-period timer; the save runs once the
store has been left alone for ``debounce_seconds``. The snapshot is taken at
save time, so the latest state is always what gets written.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from alchemist_kernel.models.snapshot import AutoSaveStatus, SaveResult, SnapshotData
from alchemist_kernel.persistence.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0


class AutoSaver:
    def __init__(
        self,
        snapshot_source: Callable[[], SnapshotData],
        snapshot_store: SnapshotStore,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        on_saved: Optional[Callable[[datetime], None]] = None,
    ):
        self._snapshot_source = snapshot_source
        self._snapshot_store = snapshot_store
        self._debounce_seconds = debounce_seconds
        self._on_saved = on_saved
        self._lock = threading.Lock()
        # Held from snapshot to on_saved so timer and manual saves cannot interleave
        self._save_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._status = AutoSaveStatus.IDLE
        self._last_result: Optional[SaveResult] = None

    @property
    def status(self) -> AutoSaveStatus:
        return self._status

    @property
    def last_result(self) -> Optional[SaveResult]:
        return self._last_result

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """Restart the quiet period."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._debounce_seconds, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> Optional[SaveResult]:
        """Save now if a save is pending. Returns None when nothing was pending."""
        with self._lock:
            if self._timer is None:
                return None
            self._timer.cancel()
            self._timer = None
        return self.save_now()

    def _fire(self) -> None:
        with self._lock:
            if self._timer is None or threading.current_thread() is not self._timer:
                return
            self._timer = None
        self.save_now()

    def save_now(self) -> SaveResult:
        with self._save_lock:
            self._status = AutoSaveStatus.SAVING
            try:
                result = self._snapshot_store.save(self._snapshot_source())
            except Exception as exc:
                # Failures surface through status and last_result
                logger.exception("Auto-save failed")
                result = SaveResult(success=False, error=str(exc))

            self._last_result = result
            if result.success:
                self._status = AutoSaveStatus.SAVED
                if self._on_saved is not None and result.saved_at is not None:
                    self._on_saved(result.saved_at)
            else:
                self._status = AutoSaveStatus.ERROR
                logger.error("Auto-save did not complete: %s", result.error)
            return result
