"""In-memory batch store with TTL cleanup.

WHY: The HTTP API accepts a batch of files, returns immediately, and lets
clients poll per-file progress while the orchestrator runs in the
background. Batches only need to live as long as the process; an in-memory
store is enough.

HOW: Batch holds the submission metadata and the latest JobState per file.
BatchStore keeps batches in a dict guarded by a threading.Lock, since the
background runner executes in a worker thread while request handlers read
from the event loop thread.

RULES:
- Batch IDs are UUID4 hex strings generated at creation time
- update_state replaces one JobState entry whole; readers never see a
  half-written record
- Only batches whose every entry is terminal expire, measured from the
  moment the last entry became terminal
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from audio_to_text.core.batch import JobState

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


@dataclass
class Batch:
    """One submitted batch and the current state of each of its files."""

    id: str
    created_at: float
    updated_at: float
    states: List[JobState]
    config: Dict[str, Any] = field(default_factory=dict)
    completed_at: Optional[float] = None

    @property
    def is_finished(self) -> bool:
        return all(s.phase.is_terminal for s in self.states)


class BatchStore:
    """Thread-safe in-memory store for transcription batches."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_batches: int = 100,
    ) -> None:
        self._batches: Dict[str, Batch] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_batches = max_batches

    def create_batch(
        self,
        file_names: List[str],
        config: Optional[Dict[str, Any]] = None,
    ) -> Batch:
        """Create a batch with one Pending JobState per file name.

        Raises:
            ValueError: when max_batches are already stored.
        """
        with self._lock:
            if len(self._batches) >= self.max_batches:
                raise ValueError(
                    "Maximum number of stored batches ({}) reached".format(self.max_batches)
                )
            now = time.time()
            batch = Batch(
                id=uuid.uuid4().hex,
                created_at=now,
                updated_at=now,
                states=[JobState(file_name=name) for name in file_names],
                config=config or {},
            )
            self._batches[batch.id] = batch

        logger.info("Created batch %s with %d file(s)", batch.id, len(file_names))
        return batch

    def get_batch(self, batch_id: str) -> Optional[Batch]:
        with self._lock:
            return self._batches.get(batch_id)

    def snapshot(self, batch_id: str) -> Optional[List[JobState]]:
        """Copy of a batch's states, or None for unknown IDs."""
        with self._lock:
            batch = self._batches.get(batch_id)
            return list(batch.states) if batch else None

    def update_state(self, batch_id: str, index: int, state: JobState) -> bool:
        """Replace the JobState at index. Returns False for unknown batches."""
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                return False
            now = time.time()
            batch.states[index] = state
            batch.updated_at = now
            if batch.completed_at is None and batch.is_finished:
                batch.completed_at = now
            return True

    def delete_batch(self, batch_id: str) -> bool:
        with self._lock:
            batch = self._batches.pop(batch_id, None)
        if batch is None:
            return False
        logger.info("Deleted batch %s", batch_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove finished batches older than the TTL; return how many."""
        now = time.time()
        expired: List[str] = []
        with self._lock:
            for batch_id, batch in list(self._batches.items()):
                if batch.completed_at is None:
                    continue
                if now - batch.completed_at > self._ttl_seconds:
                    del self._batches[batch_id]
                    expired.append(batch_id)

        for batch_id in expired:
            logger.info("Expired batch %s", batch_id)
        return len(expired)
