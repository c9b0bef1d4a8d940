"""High-level memory repository combining the record store and the index."""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from galactica.core.exceptions import IndexDegraded, StorageFailure
from galactica.core.logger import get_logger
from galactica.core.utils import utcnow

from ..importance_scorer import ImportanceScorer
from ..memory_records import Memory
from ..record_locks import RecordLocks
from .base import BaseMemoryStore, MemoryIndex

Mutation = Callable[[Memory], Memory]


class MemoryRepository:
    """The only write path into storage and the index.

    New records are persisted flagged as index-pending and the flag is
    cleared once the index accepts them, so a crash between the two steps
    leaves a record that ``reconcile`` can repair. Updates to an existing
    record run under that record's lock and keep the index entry in step.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        index: MemoryIndex,
        scorer: ImportanceScorer,
        *,
        locks: RecordLocks | None = None,
        index_retries: int = 3,
        retry_backoff: float = 0.05,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._index = index
        self._scorer = scorer
        self._locks = locks or RecordLocks()
        self._index_retries = max(1, index_retries)
        self._retry_backoff = retry_backoff
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)

    @property
    def store(self) -> BaseMemoryStore:
        return self._store

    @property
    def index(self) -> MemoryIndex:
        return self._index

    @property
    def scorer(self) -> ImportanceScorer:
        return self._scorer

    def persist(self, memory: Memory) -> None:
        """Durably store a new record; it is not searchable yet."""
        self._store.insert(memory, index_pending=True)

    def try_index(self, memory: Memory) -> bool:
        """Single index attempt. Clears the pending flag on success."""
        try:
            self._index.upsert(
                memory.id,
                memory.embedding,
                memory.tags,
                importance=memory.importance,
                last_accessed_at=memory.last_accessed_at,
            )
        except Exception as exc:  # noqa: BLE001 - any index failure degrades, never loses the record
            self._logger.warning("Index insert for %s failed: %s", memory.id, exc)
            return False
        try:
            self._store.set_index_pending(memory.id, False)
        except StorageFailure as exc:
            # Searchable already; reconcile will clear the stale flag.
            self._logger.warning("Could not clear index-pending flag for %s: %s", memory.id, exc)
        return True

    def index_with_retry(self, memory_id: str, *, attempts: Optional[int] = None) -> Optional[IndexDegraded]:
        """Retry the index insert with backoff; report degradation if it never lands.

        Each attempt reloads the record under its lock, so metadata merged in
        between attempts is what gets indexed.
        """
        total = attempts or self._index_retries
        for attempt in range(total):
            if attempt and self._retry_backoff > 0:
                time.sleep(self._retry_backoff * (2 ** (attempt - 1)))
            with self._locks.hold(memory_id):
                current = self._store.get(memory_id)
                if current is None or not current.is_active:
                    return None
                if self.try_index(current):
                    return None
        degraded = IndexDegraded(memory_id)
        self._logger.warning("%s; left for reconciliation after %d attempts", degraded, total)
        return degraded

    def get(self, memory_id: str) -> Optional[Memory]:
        return self._store.get(memory_id)

    def get_many(self, memory_ids: Sequence[str]) -> Dict[str, Memory]:
        return self._store.get_many(memory_ids)

    def list_active(self) -> List[Memory]:
        return list(self._store.list_all())

    def with_fresh_importance(self, memory: Memory, now: Optional[datetime] = None) -> Memory:
        """Copy of ``memory`` with its importance recomputed; nothing is written."""
        return replace(memory, importance=self._scorer.recompute(memory, now or self._clock()))

    def mutate(self, memory_id: str, mutation: Mutation) -> Optional[Memory]:
        """Apply ``mutation`` under the record lock and persist the result.

        Returns ``None`` when the record does not exist. The index entry is
        refreshed for active records and dropped for records that became
        inactive.
        """
        with self._locks.hold(memory_id):
            current = self._store.get(memory_id)
            if current is None:
                return None
            updated = mutation(replace(current, tags=list(current.tags)))
            self._store.update(updated)
            if updated.is_active and not current.is_active:
                # Reactivated (its successor was purged): make it searchable again.
                if not self.try_index(updated):
                    self._store.set_index_pending(memory_id, True)
            elif updated.is_active:
                self._index.update_metadata(
                    memory_id,
                    tags=updated.tags,
                    importance=updated.importance,
                    last_accessed_at=updated.last_accessed_at,
                )
            elif current.is_active:
                self._index.remove(memory_id)
            return updated

    def record_access(self, memory_id: str, now: Optional[datetime] = None) -> Optional[Memory]:
        """Count one retrieval hit and rescore."""
        timestamp = now or self._clock()

        def _touch(memory: Memory) -> Memory:
            memory.access_count += 1
            memory.last_accessed_at = timestamp
            memory.importance = self._scorer.recompute(memory, timestamp)
            return memory

        return self.mutate(memory_id, _touch)

    def refresh_importance(self, memory_id: str, now: Optional[datetime] = None) -> Optional[Memory]:
        """Persist a lazily recomputed importance without counting an access."""
        timestamp = now or self._clock()

        def _rescore(memory: Memory) -> Memory:
            memory.importance = self._scorer.recompute(memory, timestamp)
            return memory

        return self.mutate(memory_id, _rescore)

    def retire(self, memory_id: str, now: Optional[datetime] = None) -> Optional[Memory]:
        """Soft-delete: keep the record, hide it from queries."""
        timestamp = now or self._clock()

        def _retire(memory: Memory) -> Memory:
            if memory.retired_at is None:
                memory.retired_at = timestamp
            return memory

        return self.mutate(memory_id, _retire)

    def purge(self, memory_id: str) -> bool:
        """Physically delete a record, splicing any edit chain around it."""
        memory = self._store.get(memory_id)
        if memory is None:
            return False
        predecessor_id, successor_id = memory.supersedes, memory.superseded_by

        # Neighbours are relinked under their own locks before the delete so
        # no two record locks are ever held at once.
        if predecessor_id:
            def _relink_predecessor(record: Memory) -> Memory:
                record.superseded_by = successor_id
                return record

            self.mutate(predecessor_id, _relink_predecessor)
        if successor_id:
            def _relink_successor(record: Memory) -> Memory:
                record.supersedes = predecessor_id
                return record

            self.mutate(successor_id, _relink_successor)

        with self._locks.hold(memory_id):
            self._index.remove(memory_id)
            deleted = self._store.delete(memory_id)
        self._logger.info(
            "Purged memory %s (chain %s -> %s)", memory_id, predecessor_id or "-", successor_id or "-"
        )
        return deleted

    def discard(self, memory_id: str) -> bool:
        """Delete a record no other record links to. Neighbours are left untouched."""
        with self._locks.hold(memory_id):
            self._index.remove(memory_id)
            return self._store.delete(memory_id)

    def reconcile(self) -> int:
        """Index every record still flagged pending. Returns how many landed."""
        repaired = 0
        pending = self._store.list_index_pending()
        for memory_id in pending:
            with self._locks.hold(memory_id):
                memory = self._store.get(memory_id)
                if memory is None or not memory.is_active:
                    continue
                if self.try_index(memory):
                    repaired += 1
        if pending:
            self._logger.info("Index reconciliation repaired %d of %d pending records", repaired, len(pending))
        return repaired
