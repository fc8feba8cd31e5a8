"""Durable offline write queue and its replay.

Operations that cannot reach the remote store are appended to a JSON list
kept in the local store. An explicit sync replays them strictly in enqueue
order, isolates failures, reports progress after every item, and persists
only what failed (plus anything enqueued while the pass was running).
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from pydantic import TypeAdapter, ValidationError
from tqdm import tqdm

from ..db.sqlite import Database
from .operations import Operation, QueueEntry

logger = logging.getLogger(__name__)

OFFLINE_QUEUE_KEY = "offline_queue"

ProgressCallback = Callable[[int, int, int], None]
QueuedCallback = Callable[[QueueEntry], None]

_entries_adapter = TypeAdapter(list[QueueEntry])


class OperationSender(Protocol):
    """Anything that can send an operation to the remote store."""

    def execute(self, operation: Operation): ...


@dataclass
class SyncResult:
    """Result of a replay pass."""

    total: int = 0
    succeeded: int = 0
    failed: list[QueueEntry] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class OfflineQueue:
    """Ordered, durable list of staged operations.

    One lock guards both enqueue and the whole replay loop, so producers and
    the single consumer never interleave.
    """

    def __init__(
        self,
        db: Database,
        key: str = OFFLINE_QUEUE_KEY,
        on_queued: Optional[QueuedCallback] = None,
    ):
        """Initialize queue.

        Args:
            db: Database holding the local store
            key: Local store key the queue is persisted under
            on_queued: Notified after every enqueue
        """
        self.db = db
        self.key = key
        self.on_queued = on_queued
        self.lock = threading.RLock()

    def load(self) -> list[QueueEntry]:
        """Persisted entries in enqueue order; unreadable content reads as empty."""
        raw = self.db.get_local_value(self.key)
        if not raw:
            return []
        try:
            return _entries_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("Offline queue is unreadable, treating it as empty: %s", e)
            return []

    def _save(self, entries: list[QueueEntry]) -> None:
        if entries:
            self.db.set_local_value(self.key, _entries_adapter.dump_json(entries).decode())
        else:
            self.db.delete_local_value(self.key)

    def enqueue(self, operation: Operation) -> QueueEntry:
        """Stage an operation for the next sync."""
        entry = QueueEntry(operation=operation)
        with self.lock:
            entries = self.load()
            entries.append(entry)
            self._save(entries)

        logger.info("Queued offline: %s", entry.describe())
        if self.on_queued:
            self.on_queued(entry)
        return entry

    def replace(self, entries: list[QueueEntry]) -> None:
        """Persist exactly these entries as the queue."""
        with self.lock:
            self._save(entries)

    def clear(self) -> None:
        with self.lock:
            self._save([])

    def __len__(self) -> int:
        return len(self.load())


class SyncProcessor:
    """Replays the offline queue against the remote store."""

    def __init__(
        self,
        queue: OfflineQueue,
        remote: OperationSender,
        show_progress: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize sync processor.

        Args:
            queue: Queue to drain
            remote: Store client with an ``execute(operation)`` method
            show_progress: Show a tqdm progress bar
            clock: Seconds source used for the ETA
        """
        self.queue = queue
        self.remote = remote
        self.show_progress = show_progress
        self.clock = clock

    def sync(self, on_progress: Optional[ProgressCallback] = None) -> SyncResult:
        """Replay every queued operation once.

        Args:
            on_progress: Called after each item with
                (processed_count, total, eta_seconds)

        Returns:
            SyncResult; ``success`` is False when any item failed
        """
        with self.queue.lock:
            entries = self.queue.load()
            total = len(entries)
            result = SyncResult(total=total)

            if total == 0:
                logger.info("Offline queue is empty, nothing to sync")
                return result

            started = self.clock()
            iterator = tqdm(entries, desc="Syncing", disable=not self.show_progress)

            for processed, entry in enumerate(iterator, start=1):
                try:
                    self.remote.execute(entry.operation)
                    result.succeeded += 1
                except Exception as e:
                    logger.warning("Sync failed for %s: %s", entry.describe(), e)
                    result.failed.append(entry)
                    result.errors.append((entry.describe(), str(e)))

                if on_progress:
                    elapsed = self.clock() - started
                    remaining = total - processed
                    eta_seconds = math.ceil(elapsed / processed * remaining)
                    on_progress(processed, total, eta_seconds)

            # Entries appended during the pass belong to the next one
            arrived_meanwhile = self.queue.load()[total:]
            self.queue.replace(result.failed + arrived_meanwhile)

        if result.failed:
            logger.warning(
                "Synced with errors: %d of %d items kept in offline queue",
                len(result.failed),
                total,
            )
        else:
            logger.info("Synced %d queued items", total)
        return result
