"""Exact linear-scan vector index with tag filtering."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from galactica.core.exceptions import ConfigError
from galactica.core.logger import get_logger
from galactica.core.utils import ensure_aware, normalise_tags

from .base import IndexMatch, MemoryIndex

_EPOCH = 0.0


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """Ranking metadata kept beside each vector."""

    memory_id: str
    tags: FrozenSet[str]
    importance: int
    last_accessed: float

    def rank_key(self, similarity: float) -> Tuple[float, int, float, str]:
        # Sorted ascending, so negate everything that should come first.
        return (-round(similarity, 9), -self.importance, -self.last_accessed, self.memory_id)


def make_entry(
    memory_id: str,
    tags: Iterable[str],
    importance: int,
    last_accessed_at: Optional[datetime],
) -> IndexEntry:
    timestamp = ensure_aware(last_accessed_at).timestamp() if last_accessed_at else _EPOCH
    return IndexEntry(memory_id, frozenset(normalise_tags(tags)), int(importance), timestamp)


def normalise_vector(embedding: Sequence[float], dimension: Optional[int]) -> np.ndarray:
    """Return a float32 unit vector, validating the dimension."""
    vector = np.asarray(embedding, dtype="float32").reshape(-1)
    if dimension is not None and vector.shape[0] != dimension:
        raise ConfigError(f"Embedding dimension mismatch: expected {dimension}, got {vector.shape[0]}")
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        vector = vector / norm
    return vector


def rank_matches(scored: Iterable[Tuple[IndexEntry, float]], top_k: int) -> List[IndexMatch]:
    ordered = sorted(scored, key=lambda pair: pair[0].rank_key(pair[1]))
    return [IndexMatch(entry.memory_id, float(similarity)) for entry, similarity in ordered[:top_k]]


class TagPostings:
    """Inverted tag -> ids map. Callers serialise access."""

    def __init__(self) -> None:
        self._postings: Dict[str, Set[str]] = {}

    def add(self, memory_id: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._postings.setdefault(tag, set()).add(memory_id)

    def discard(self, memory_id: str, tags: Iterable[str]) -> None:
        for tag in tags:
            bucket = self._postings.get(tag)
            if bucket is None:
                continue
            bucket.discard(memory_id)
            if not bucket:
                del self._postings[tag]

    def matching(self, tag_filter: Sequence[str]) -> Set[str]:
        """Ids carrying every tag of a non-empty filter."""
        buckets = [self._postings.get(tag) for tag in tag_filter]
        if any(bucket is None for bucket in buckets):
            return set()
        buckets.sort(key=len)
        result = set(buckets[0])
        for bucket in buckets[1:]:
            result &= bucket
        return result


class LinearScanIndex(MemoryIndex):
    """Exact cosine-similarity index backed by numpy.

    Writers hold the lock only while editing the entry maps. Searches copy
    the filtered candidate set inside the lock and score it outside, so a long
    scan never blocks ingestion.
    """

    def __init__(self, dimension: Optional[int] = None) -> None:
        self._dimension = dimension
        self._lock = threading.Lock()
        self._vectors: Dict[str, np.ndarray] = {}
        self._entries: Dict[str, IndexEntry] = {}
        self._tags = TagPostings()
        self._logger = get_logger(self.__class__.__name__)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def upsert(
        self,
        memory_id: str,
        embedding: Sequence[float],
        tags: Iterable[str],
        *,
        importance: int = 0,
        last_accessed_at: Optional[datetime] = None,
    ) -> None:
        entry = make_entry(memory_id, tags, importance, last_accessed_at)
        with self._lock:
            vector = normalise_vector(embedding, self._dimension)
            if self._dimension is None:
                self._dimension = int(vector.shape[0])
            previous = self._entries.get(memory_id)
            if previous is not None:
                self._tags.discard(memory_id, previous.tags)
            self._vectors[memory_id] = vector
            self._entries[memory_id] = entry
            self._tags.add(memory_id, entry.tags)

    def update_metadata(
        self,
        memory_id: str,
        *,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[int] = None,
        last_accessed_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            previous = self._entries.get(memory_id)
            if previous is None:
                return False
            entry = IndexEntry(
                memory_id,
                frozenset(normalise_tags(tags)) if tags is not None else previous.tags,
                int(importance) if importance is not None else previous.importance,
                ensure_aware(last_accessed_at).timestamp() if last_accessed_at else previous.last_accessed,
            )
            if entry.tags != previous.tags:
                self._tags.discard(memory_id, previous.tags)
                self._tags.add(memory_id, entry.tags)
            self._entries[memory_id] = entry
            return True

    def remove(self, memory_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(memory_id, None)
            if entry is None:
                return False
            self._vectors.pop(memory_id, None)
            self._tags.discard(memory_id, entry.tags)
            return True

    def search(
        self,
        query_embedding: Sequence[float],
        *,
        tag_filter: Optional[Iterable[str]] = None,
        top_k: int = 5,
    ) -> Sequence[IndexMatch]:
        if top_k <= 0:
            return []
        wanted = normalise_tags(tag_filter)
        with self._lock:
            if not self._entries:
                return []
            query = normalise_vector(query_embedding, self._dimension)
            candidate_ids = self._tags.matching(wanted) if wanted else self._entries.keys()
            candidates = [(self._entries[memory_id], self._vectors[memory_id]) for memory_id in candidate_ids]

        if not candidates:
            return []
        matrix = np.vstack([vector for _, vector in candidates])
        similarities = matrix @ query
        scored = [(entry, float(similarity)) for (entry, _), similarity in zip(candidates, similarities)]
        return rank_matches(scored, top_k)

    def select(self, tag_filter: Optional[Iterable[str]] = None) -> List[str]:
        wanted = normalise_tags(tag_filter)
        with self._lock:
            if wanted:
                return sorted(self._tags.matching(wanted))
            return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, memory_id: object) -> bool:
        return memory_id in self._entries
