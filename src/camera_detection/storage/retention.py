"""
Retention engine - ages out old events and their snapshot files.

One pass:
1. cutoff = now - retention_days
2. delete every non-pinned event older than cutoff, in batches (a failed
   batch is logged and skipped)
3. delete the snapshot files of those rows unless a remaining row shares them
4. delete orphaned snapshot files older than cutoff that no row references
5. compact storage when enough rows were removed

Pinned events and their files are never touched.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from ..config.settings import DetectionSettings
from ..core.frame_saver import delete_snapshot, list_snapshot_files, snapshot_timestamp
from ..models import PurgeResult, utc_now
from ..utils.constants import DEFAULT_PURGE_INTERVAL, DEFAULT_VACUUM_THRESHOLD, PURGE_BATCH_SIZE
from .database import EventStore

logger = logging.getLogger(__name__)


class PurgeEngine:
    """Periodic retention enforcement on a background thread."""

    def __init__(
        self,
        store: EventStore,
        snapshot_dir: Path,
        settings: DetectionSettings,
        interval: float = DEFAULT_PURGE_INTERVAL,
        vacuum_threshold: int = DEFAULT_VACUUM_THRESHOLD,
        batch_size: int = PURGE_BATCH_SIZE,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.snapshot_dir = Path(snapshot_dir)
        self.settings = settings
        self.interval = interval
        self.vacuum_threshold = vacuum_threshold
        self.batch_size = batch_size
        self.now = now

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def purge(self) -> PurgeResult:
        """Run one retention pass and return its summary."""
        cutoff = self.now() - timedelta(days=self.settings.retention_days)
        result = PurgeResult(cutoff=cutoff)

        expired = self.store.find_expired(cutoff)

        removed: list[tuple[str, str | None]] = []
        for i in range(0, len(expired), self.batch_size):
            batch = expired[i : i + self.batch_size]
            try:
                result.deleted_rows += self.store.delete_events([event_id for event_id, _ in batch])
            except Exception as e:
                logger.error(f"Purge batch of {len(batch)} events failed: {e}")
                continue
            removed.extend(batch)

        # Rows can share a snapshot; a file stays while any row still points at it
        referenced = self.store.referenced_snapshots()
        for filename in sorted({name for _, name in removed if name} - referenced):
            if delete_snapshot(self.snapshot_dir, filename):
                result.deleted_files += 1
            else:
                result.failed_files.append(filename)

        result.orphan_files = self._remove_orphans(cutoff, referenced, result)

        if result.deleted_rows > self.vacuum_threshold:
            try:
                result.compacted = self.store.compact()
            except Exception as e:
                logger.error(f"Storage compaction failed: {e}")

        if result.deleted_rows or result.orphan_files:
            logger.info(
                f"Purge: removed {result.deleted_rows} events, "
                f"{result.deleted_files} snapshots, {result.orphan_files} orphans "
                f"(older than {cutoff:%Y-%m-%d %H:%M})"
            )
        else:
            logger.debug("Purge: nothing to remove")
        if result.failed_files:
            logger.warning(f"Purge: {len(result.failed_files)} snapshot(s) could not be deleted")
        return result

    def _remove_orphans(
        self, cutoff: datetime, referenced: set[str], result: PurgeResult
    ) -> int:
        removed = 0
        for path in list_snapshot_files(self.snapshot_dir):
            if path.name in referenced:
                continue
            try:
                taken = snapshot_timestamp(path)
            except OSError:
                continue
            if taken >= cutoff:
                continue
            if delete_snapshot(self.snapshot_dir, path.name):
                removed += 1
            else:
                result.failed_files.append(path.name)
        return removed

    def start(self) -> None:
        """Purge now, then every interval seconds until stopped."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Purge engine is already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="purge-engine", daemon=True)
        self._thread.start()
        logger.info(
            f"Retention: {self.settings.retention_days} days, purging every {self.interval:g}s"
        )

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while True:
            try:
                self.purge()
            except Exception as e:
                logger.error(f"Purge failed: {e}")
            if self._stop_event.wait(self.interval):
                break
