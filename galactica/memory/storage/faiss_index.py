"""Sharded FAISS index for larger corpora."""

from __future__ import annotations

import threading
import zlib
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from galactica.core.logger import get_logger
from galactica.core.utils import ensure_aware, normalise_tags

from .base import IndexMatch, MemoryIndex
from .vector_index import IndexEntry, TagPostings, make_entry, normalise_vector, rank_matches


class _Shard:
    """One FAISS inner-product index plus its id and tag bookkeeping."""

    def __init__(self, dimension: int) -> None:
        self.lock = threading.Lock()
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self.entries: Dict[str, IndexEntry] = {}
        self.internal_ids: Dict[str, int] = {}
        self.external_ids: Dict[int, str] = {}
        self.tags = TagPostings()
        self.next_id = 0

    def drop(self, memory_id: str) -> Optional[IndexEntry]:
        entry = self.entries.pop(memory_id, None)
        if entry is None:
            return None
        internal_id = self.internal_ids.pop(memory_id)
        self.external_ids.pop(internal_id, None)
        self.index.remove_ids(np.asarray([internal_id], dtype="int64"))
        self.tags.discard(memory_id, entry.tags)
        return entry


class FaissVectorIndex(MemoryIndex):
    """Cosine-similarity index split across hash-addressed FAISS shards.

    Each shard has its own lock and a search visits the shards one at a time,
    so no single lock is held for a whole query. Results are exact: every
    shard is a flat inner-product index over L2-normalised vectors.
    """

    def __init__(self, dimension: int, *, shards: int = 4) -> None:
        if shards <= 0:
            raise ValueError(f"shards must be positive, got {shards}")
        self._dimension = dimension
        self._shards = [_Shard(dimension) for _ in range(shards)]
        self._logger = get_logger(self.__class__.__name__)
        self._logger.debug("FAISS index ready (dimension=%s, shards=%s)", dimension, shards)

    @property
    def dimension(self) -> int:
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
        vector = normalise_vector(embedding, self._dimension)[np.newaxis, :]
        entry = make_entry(memory_id, tags, importance, last_accessed_at)
        shard = self._shard_for(memory_id)
        with shard.lock:
            shard.drop(memory_id)
            internal_id = shard.next_id
            shard.next_id += 1
            shard.index.add_with_ids(vector, np.asarray([internal_id], dtype="int64"))
            shard.entries[memory_id] = entry
            shard.internal_ids[memory_id] = internal_id
            shard.external_ids[internal_id] = memory_id
            shard.tags.add(memory_id, entry.tags)

    def update_metadata(
        self,
        memory_id: str,
        *,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[int] = None,
        last_accessed_at: Optional[datetime] = None,
    ) -> bool:
        shard = self._shard_for(memory_id)
        with shard.lock:
            previous = shard.entries.get(memory_id)
            if previous is None:
                return False
            entry = IndexEntry(
                memory_id,
                frozenset(normalise_tags(tags)) if tags is not None else previous.tags,
                int(importance) if importance is not None else previous.importance,
                ensure_aware(last_accessed_at).timestamp() if last_accessed_at else previous.last_accessed,
            )
            if entry.tags != previous.tags:
                shard.tags.discard(memory_id, previous.tags)
                shard.tags.add(memory_id, entry.tags)
            shard.entries[memory_id] = entry
            return True

    def remove(self, memory_id: str) -> bool:
        shard = self._shard_for(memory_id)
        with shard.lock:
            return shard.drop(memory_id) is not None

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
        query = normalise_vector(query_embedding, self._dimension)[np.newaxis, :]
        scored: List[Tuple[IndexEntry, float]] = []
        for shard in self._shards:
            with shard.lock:
                total = shard.index.ntotal
                if total == 0:
                    continue
                allowed = shard.tags.matching(wanted) if wanted else None
                if allowed is not None and not allowed:
                    continue
                # Over-fetch when filtering so enough tagged rows survive.
                k = total if allowed is not None else min(total, top_k)
                similarities, ids = shard.index.search(query, k)
                for similarity, internal_id in zip(similarities[0], ids[0]):
                    if internal_id == -1:
                        continue
                    memory_id = shard.external_ids.get(int(internal_id))
                    if memory_id is None or (allowed is not None and memory_id not in allowed):
                        continue
                    scored.append((shard.entries[memory_id], float(similarity)))
        return rank_matches(scored, top_k)

    def select(self, tag_filter: Optional[Iterable[str]] = None) -> List[str]:
        wanted = normalise_tags(tag_filter)
        selected: List[str] = []
        for shard in self._shards:
            with shard.lock:
                selected.extend(shard.tags.matching(wanted) if wanted else shard.entries)
        return sorted(selected)

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def __contains__(self, memory_id: object) -> bool:
        if not isinstance(memory_id, str):
            return False
        return memory_id in self._shard_for(memory_id).entries

    def _shard_for(self, memory_id: str) -> _Shard:
        return self._shards[zlib.crc32(memory_id.encode("utf-8")) % len(self._shards)]
