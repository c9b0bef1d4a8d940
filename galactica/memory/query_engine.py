"""Retrieval: tag filtering, vector search and ranking."""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from galactica.core.exceptions import InvalidInput
from galactica.core.logger import get_logger
from galactica.core.utils import ensure_aware, normalise_tags, utcnow

from .embedding import EmbeddingClient
from .memory_records import Memory
from .storage import MemoryRepository


@dataclass(slots=True)
class QueryPlan:
    """Validated query arguments."""

    text: Optional[str]
    tags: List[str]
    top_k: int
    min_importance: Optional[float]

    @property
    def mode(self) -> str:
        if self.text is not None:
            return "text"
        return "tags" if self.tags else "all"


class QueryEngine:
    """Answers retrieval requests and records the access they cause.

    With ``text`` the query embedding is ranked against the tag-filtered
    candidates by cosine similarity. Without it, candidates are ordered by
    importance then recency. Every returned memory counts exactly one access.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        embedder: EmbeddingClient,
        *,
        max_top_k: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._embedder = embedder
        self._max_top_k = max_top_k
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)

    def plan(
        self,
        text: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        top_k: int = 5,
        min_importance: Optional[float] = None,
    ) -> QueryPlan:
        if isinstance(top_k, bool) or not isinstance(top_k, int):
            raise InvalidInput(f"top_k must be an integer, got {top_k!r}")
        if top_k <= 0 or top_k > self._max_top_k:
            raise InvalidInput(f"top_k must be between 1 and {self._max_top_k}, got {top_k}")
        if text is not None:
            if not isinstance(text, str):
                raise InvalidInput(f"text must be a string, got {type(text).__name__}")
            if not text.strip():
                raise InvalidInput("query text must not be blank")
        if min_importance is not None and (
            isinstance(min_importance, bool) or not isinstance(min_importance, numbers.Real)
        ):
            raise InvalidInput(f"min_importance must be a number, got {min_importance!r}")
        return QueryPlan(text=text, tags=normalise_tags(tags), top_k=top_k, min_importance=min_importance)

    def query(
        self,
        text: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        top_k: int = 5,
        min_importance: Optional[float] = None,
    ) -> List[Memory]:
        plan = self.plan(text, tags, top_k, min_importance)
        now = self._clock()

        if plan.text is not None:
            candidates = self._rank_by_similarity(plan, now)
        else:
            candidates = self._rank_by_importance(plan, now)

        results: List[Memory] = []
        for memory in candidates[: plan.top_k]:
            touched = self._repository.record_access(memory.id, now)
            if touched is not None:
                results.append(touched)
        if plan.text is None:
            # Accesses move importance; the stable sort keeps recency order among ties.
            results.sort(key=lambda memory: memory.importance, reverse=True)
        self._logger.debug(
            "Query mode=%s tags=%s top_k=%d returned %d", plan.mode, plan.tags, plan.top_k, len(results)
        )
        return results

    def _rank_by_similarity(self, plan: QueryPlan, now: datetime) -> List[Memory]:
        embedding = self._embedder.embed(plan.text, query=True)
        index = self._repository.index
        # The importance post-filter can discard hits, so widen the window.
        search_k = plan.top_k if plan.min_importance is None else max(plan.top_k, len(index))
        matches = index.search(embedding, tag_filter=plan.tags, top_k=search_k)
        return self._load(plan, [match.memory_id for match in matches], now)

    def _rank_by_importance(self, plan: QueryPlan, now: datetime) -> List[Memory]:
        candidate_ids = self._repository.index.select(plan.tags)
        memories = self._load(plan, candidate_ids, now)
        memories.sort(
            key=lambda memory: (memory.importance, ensure_aware(memory.last_accessed_at), memory.id),
            reverse=True,
        )
        return memories

    def _load(self, plan: QueryPlan, memory_ids: Sequence[str], now: datetime) -> List[Memory]:
        """Fetch records in ``memory_ids`` order, rescored and post-filtered."""
        records = self._repository.get_many(memory_ids)
        loaded: List[Memory] = []
        for memory_id in memory_ids:
            record = records.get(memory_id)
            if record is None or not record.is_active:
                continue
            fresh = self._repository.with_fresh_importance(record, now)
            if plan.min_importance is not None and fresh.importance < plan.min_importance:
                continue
            loaded.append(fresh)
        return loaded
