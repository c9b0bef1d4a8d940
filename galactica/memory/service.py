"""Transport-agnostic facade over ingestion, retrieval and record updates."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from time import perf_counter
from typing import Callable, Iterable, List, Optional

from galactica.core.exceptions import GalacticaError, InvalidInput
from galactica.core.logger import get_logger
from galactica.core.utils import normalise_tags, utcnow

from .memory_records import (
    DuplicateOf,
    IngestOutcome,
    LookupOutcome,
    Memory,
    MemorySource,
    MemoryStats,
    NotFound,
)
from .embedding import EmbeddingClient
from .metrics import MemoryMetrics
from .pipeline import MemoryPipeline, MemoryPipelineResult, validate_importance
from .query_engine import QueryEngine
from .retention_policy import MemoryRetentionPolicy
from .storage import MemoryRepository


class MemoryService:
    """Bundles repository, pipeline and query engine for capture sources and agents.

    HTTP handlers, CLIs and capture apps call these methods directly; none of
    them touch the store or the index on their own.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        pipeline: MemoryPipeline,
        query_engine: QueryEngine,
        *,
        embedder: EmbeddingClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._pipeline = pipeline
        self._query_engine = query_engine
        self._embedder = embedder
        self._clock = clock
        self._metrics = MemoryMetrics()
        self._logger = get_logger(self.__class__.__name__)

    @property
    def repository(self) -> MemoryRepository:
        return self._repository

    @property
    def metrics(self) -> MemoryMetrics:
        return self._metrics

    def ingest(
        self,
        content: str,
        source: MemorySource | str,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[float] = None,
    ) -> IngestOutcome:
        """Store a capture, or merge it into the memory it duplicates."""
        return self.ingest_detailed(content, source, tags=tags, importance=importance).outcome

    def ingest_detailed(
        self,
        content: str,
        source: MemorySource | str,
        *,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[float] = None,
        supersedes: Optional[str] = None,
        exclude_from_dedup: Iterable[str] = (),
    ) -> MemoryPipelineResult:
        """Like ``ingest`` but also reports whether the record is searchable yet."""
        try:
            result = self._pipeline.run(
                content,
                source,
                tags=tags,
                importance=importance,
                supersedes=supersedes,
                exclude_from_dedup=frozenset(exclude_from_dedup),
            )
        except InvalidInput:
            self._metrics.record_capture("rejected")
            raise
        except GalacticaError as exc:
            self._metrics.record_capture("failed")
            self._logger.error("Ingestion failed: %s", exc)
            raise

        if result.duplicate_of is not None:
            self._metrics.record_capture("duplicate")
        elif result.degraded:
            self._metrics.record_capture("degraded")
        else:
            self._metrics.record_capture("stored")
        return result

    def query(
        self,
        text: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        top_k: int = 5,
        min_importance: Optional[float] = None,
    ) -> List[Memory]:
        started = perf_counter()
        mode = "text" if text is not None else ("tags" if tags else "all")
        try:
            results = self._query_engine.query(text=text, tags=tags, top_k=top_k, min_importance=min_importance)
        except GalacticaError:
            self._metrics.record_retrieval(
                mode=mode, match_count=0, latency_ms=(perf_counter() - started) * 1000, success=False
            )
            raise
        self._metrics.record_retrieval(
            mode=mode, match_count=len(results), latency_ms=(perf_counter() - started) * 1000, success=True
        )
        return results

    def get(self, memory_id: str) -> LookupOutcome:
        """Look a memory up by id, refreshing its lazily decayed importance."""
        memory = self._repository.refresh_importance(memory_id, self._clock())
        return memory if memory is not None else NotFound(memory_id)

    def update_tags(self, memory_id: str, tags: Iterable[str]) -> LookupOutcome:
        """Replace a memory's tag set."""
        new_tags = normalise_tags(tags)

        def _retag(memory: Memory) -> Memory:
            memory.tags = new_tags
            return memory

        updated = self._repository.mutate(memory_id, _retag)
        return updated if updated is not None else NotFound(memory_id)

    def update_importance(self, memory_id: str, value: float) -> LookupOutcome:
        """Set the authorial importance; the stored score is recomputed from it."""
        value = validate_importance(value)
        if value is None:
            raise InvalidInput("importance value is required")
        scorer = self._repository.scorer
        now = self._clock()

        def _rescore(memory: Memory) -> Memory:
            memory.base_importance = scorer.clamp(value)
            memory.importance = scorer.recompute(memory, now)
            return memory

        updated = self._repository.mutate(memory_id, _rescore)
        return updated if updated is not None else NotFound(memory_id)

    def edit(
        self,
        memory_id: str,
        content: str,
        tags: Optional[Iterable[str]] = None,
    ) -> IngestOutcome | NotFound:
        """Supersede a memory with new content. The old record stays, retired from search."""
        previous = self._repository.get(memory_id)
        if previous is None:
            return NotFound(memory_id)
        if previous.superseded_by is not None:
            raise InvalidInput(f"memory {memory_id} is already superseded by {previous.superseded_by}")

        merged_tags = sorted({*previous.tags, *normalise_tags(tags)})
        result = self.ingest_detailed(
            content,
            previous.source,
            tags=merged_tags,
            importance=previous.base_importance,
            supersedes=memory_id,
            exclude_from_dedup={memory_id},
        )
        outcome = result.outcome
        if isinstance(outcome, DuplicateOf):
            return outcome
        new_memory = outcome
        conflict: Optional[str] = None

        def _supersede(memory: Memory) -> Memory:
            nonlocal conflict
            # Another edit may have landed while this one was embedding.
            if memory.superseded_by is not None:
                conflict = memory.superseded_by
                return memory
            memory.superseded_by = new_memory.id
            return memory

        superseded = self._repository.mutate(memory_id, _supersede)
        if superseded is None or conflict is not None:
            self._repository.discard(new_memory.id)
            if superseded is None:
                self._logger.info("Memory %s was purged during the edit; dropped %s", memory_id, new_memory.id)
                return NotFound(memory_id)
            raise InvalidInput(f"memory {memory_id} is already superseded by {conflict}")
        self._logger.info("Memory %s superseded by %s", memory_id, new_memory.id)
        return new_memory

    def retire(self, memory_id: str) -> LookupOutcome:
        retired = self._repository.retire(memory_id, self._clock())
        return retired if retired is not None else NotFound(memory_id)

    def purge(self, memory_id: str) -> bool:
        """Physically delete a memory; edit-chain pointers are migrated first."""
        return self._repository.purge(memory_id)

    def apply_retention(
        self,
        policy: MemoryRetentionPolicy,
        *,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Retire every active memory the policy selects. Returns retired ids."""
        current_time = now or self._clock()
        retired: List[str] = []
        for memory in self._repository.list_active():
            fresh = self._repository.with_fresh_importance(memory, current_time)
            decision = policy.evaluate(fresh, current_time)
            if not decision.should_retire:
                continue
            if self._repository.retire(memory.id, current_time) is not None:
                retired.append(memory.id)
                self._logger.info("Retention retired %s: %s", memory.id, decision.reason)
        return retired

    def reconcile_index(self) -> int:
        """Make degraded records searchable. Meant for an external periodic job."""
        return self._repository.reconcile()

    def stats(self) -> MemoryStats:
        memories = self._repository.list_active()
        tag_distribution: Counter[str] = Counter()
        for memory in memories:
            tag_distribution.update(memory.tags)
        avg_importance = (
            round(sum(memory.importance for memory in memories) / len(memories), 2) if memories else 0.0
        )
        return MemoryStats(
            count=len(memories),
            tag_distribution=dict(tag_distribution.most_common()),
            avg_importance=avg_importance,
        )

    def close(self) -> None:
        if self._embedder is not None:
            self._embedder.close()

