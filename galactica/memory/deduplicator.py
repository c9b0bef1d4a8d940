"""Near-duplicate detection for incoming captures."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Collection, Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

from galactica.core.config import MemoryConfig
from galactica.core.logger import get_logger
from galactica.core.utils import ensure_aware, normalise_content, utcnow

from .memory_records import Memory
from .storage.base import BaseMemoryStore, MemoryIndex


def _unit(embedding: Sequence[float]) -> np.ndarray:
    vector = np.asarray(embedding, dtype="float32").reshape(-1)
    norm = float(np.linalg.norm(vector))
    return vector / norm if norm > 0.0 else vector


class RecentCaptures:
    """Vectors of recently committed captures, numbered in commit order.

    The ingestion pipeline runs the expensive index scan before entering its
    commit section and uses this log to check only what was committed after
    that scan started.
    """

    def __init__(self, capacity: int = 1024) -> None:
        self._entries: Deque[Tuple[int, str, np.ndarray]] = deque(maxlen=capacity)
        self._sequence = 0
        self._lock = threading.Lock()

    def checkpoint(self) -> int:
        with self._lock:
            return self._sequence

    def record(self, memory_id: str, embedding: Sequence[float]) -> None:
        with self._lock:
            self._sequence += 1
            self._entries.append((self._sequence, memory_id, _unit(embedding)))

    def since(self, checkpoint: int) -> Optional[List[Tuple[str, np.ndarray]]]:
        """Captures committed after ``checkpoint``, or ``None`` if some were evicted."""
        with self._lock:
            if self._sequence - checkpoint > len(self._entries):
                return None
            return [(memory_id, vector) for sequence, memory_id, vector in self._entries if sequence > checkpoint]


class MemoryDeduplicator:
    """Decides whether a capture restates an existing memory.

    A candidate qualifies when its content matches after trim + case-fold
    (any age), or when its embedding similarity reaches the threshold and it
    was created inside the recency window. Among qualifying candidates the
    most recently accessed one wins.

    ``similar_ids`` (index scan) and ``resolve`` (store lookups and the final
    choice) can run separately so callers keep the index scan out of their
    critical sections. ``find_duplicate`` runs both.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        index: MemoryIndex,
        *,
        similarity_threshold: float = 0.92,
        recency_window: timedelta = timedelta(hours=24),
        candidate_limit: int = 20,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._index = index
        self._similarity_threshold = similarity_threshold
        self._recency_window = recency_window
        self._candidate_limit = candidate_limit
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_config(
        cls,
        config: MemoryConfig,
        store: BaseMemoryStore,
        index: MemoryIndex,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> "MemoryDeduplicator":
        return cls(
            store,
            index,
            similarity_threshold=config.duplicate_threshold,
            recency_window=config.duplicate_window,
            candidate_limit=config.duplicate_candidate_limit,
            clock=clock,
        )

    def find_duplicate(
        self,
        embedding: Sequence[float],
        content: str,
        *,
        exclude: Collection[str] = (),
    ) -> Optional[str]:
        return self.resolve(content, self.similar_ids(embedding, exclude=exclude), exclude=exclude)

    def similar_ids(self, embedding: Sequence[float], *, exclude: Collection[str] = ()) -> List[str]:
        """Indexed memories at or above the similarity threshold."""
        matches = self._index.search(embedding, top_k=self._candidate_limit)
        return [
            match.memory_id
            for match in matches
            if match.similarity >= self._similarity_threshold and match.memory_id not in exclude
        ]

    def similar_among(
        self,
        embedding: Sequence[float],
        captures: Sequence[Tuple[str, np.ndarray]],
        *,
        exclude: Collection[str] = (),
    ) -> List[str]:
        """Like ``similar_ids`` but over captures not yet seen by the index scan."""
        if not captures:
            return []
        query = _unit(embedding)
        return [
            memory_id
            for memory_id, vector in captures
            if memory_id not in exclude
            and vector.shape == query.shape
            and float(vector @ query) >= self._similarity_threshold
        ]

    def resolve(
        self,
        content: str,
        similar_ids: Sequence[str],
        *,
        exclude: Collection[str] = (),
    ) -> Optional[str]:
        candidates: Dict[str, Memory] = {}
        for record in self._store.find_by_content_key(normalise_content(content)):
            if record.id not in exclude:
                candidates[record.id] = record

        now = ensure_aware(self._clock())
        pending = [memory_id for memory_id in dict.fromkeys(similar_ids) if memory_id not in candidates]
        if pending:
            for memory_id, record in self._store.get_many(pending).items():
                if record.is_active and now - ensure_aware(record.created_at) <= self._recency_window:
                    candidates[memory_id] = record

        if not candidates:
            return None

        chosen = max(
            candidates.values(),
            key=lambda record: (
                ensure_aware(record.last_accessed_at),
                ensure_aware(record.created_at),
                record.id,
            ),
        )
        self._logger.debug("Capture matches existing memory %s (%d candidates)", chosen.id, len(candidates))
        return chosen.id
