"""Ingestion pipeline: validate, embed, deduplicate, score, persist, index."""

from __future__ import annotations

import numbers
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Collection, Iterable, Optional
from uuid import uuid4

from galactica.core.exceptions import GalacticaError, IndexDegraded, InvalidInput
from galactica.core.logger import get_logger
from galactica.core.utils import normalise_tags, utcnow

from .deduplicator import MemoryDeduplicator, RecentCaptures
from .embedding import EmbeddingClient
from .importance_scorer import ImportanceScorer
from .memory_records import DuplicateOf, IngestOutcome, Memory, MemorySource
from .storage import MemoryRepository


def validate_content(content: object) -> str:
    if not isinstance(content, str):
        raise InvalidInput(f"content must be a string, got {type(content).__name__}")
    if not content.strip():
        raise InvalidInput("content must not be empty or whitespace-only")
    return content


def validate_importance(importance: object) -> Optional[float]:
    if importance is None:
        return None
    if isinstance(importance, bool) or not isinstance(importance, numbers.Real):
        raise InvalidInput(f"importance must be a number, got {importance!r}")
    return float(importance)


@dataclass(slots=True)
class MemoryPipelineResult:
    memory: Optional[Memory]
    duplicate_of: Optional[DuplicateOf]
    index_error: Optional[IndexDegraded] = None

    @property
    def degraded(self) -> bool:
        """Stored durably but not searchable yet."""
        return self.index_error is not None

    @property
    def outcome(self) -> IngestOutcome:
        if self.duplicate_of is not None:
            return self.duplicate_of
        if self.memory is None:
            raise GalacticaError("pipeline result carries neither a memory nor a merge")
        return self.memory


class MemoryPipeline:
    """Turns one capture event into a stored memory or a merge.

    The embedding request and the index scan for similar memories run without
    any lock held. The commit section then checks only the captures committed
    since that scan began, resolves the duplicate, writes the record and
    makes the first index attempt, so two concurrent captures of the same
    text cannot both be stored. Index retries happen after it is released.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        embedder: EmbeddingClient,
        deduplicator: MemoryDeduplicator,
        scorer: ImportanceScorer,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._embedder = embedder
        self._deduplicator = deduplicator
        self._scorer = scorer
        self._clock = clock
        self._commit_lock = threading.Lock()
        self._recent = RecentCaptures()
        self._logger = get_logger(self.__class__.__name__)

    def run(
        self,
        content: str,
        source: MemorySource | str,
        *,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[float] = None,
        supersedes: Optional[str] = None,
        exclude_from_dedup: Collection[str] = (),
    ) -> MemoryPipelineResult:
        text = validate_content(content)
        capture_source = MemorySource.parse(source)
        explicit_tags = normalise_tags(tags)
        explicit_importance = validate_importance(importance)

        embedding = self._embedder.embed(text)
        checkpoint = self._recent.checkpoint()
        similar = self._deduplicator.similar_ids(embedding, exclude=exclude_from_dedup)

        with self._commit_lock:
            late = self._recent.since(checkpoint)
            if late is None:
                self._logger.debug("Capture log overflowed during the scan; rescanning the index")
                similar = self._deduplicator.similar_ids(embedding, exclude=exclude_from_dedup)
            else:
                similar += self._deduplicator.similar_among(embedding, late, exclude=exclude_from_dedup)
            duplicate_id = self._deduplicator.resolve(text, similar, exclude=exclude_from_dedup)
            if duplicate_id is not None:
                merged = self._merge(duplicate_id, explicit_tags)
                if merged is not None:
                    self._logger.info("Capture from %s merged into %s", capture_source.value, duplicate_id)
                    return MemoryPipelineResult(memory=None, duplicate_of=DuplicateOf(duplicate_id, merged))
                self._logger.debug("Duplicate %s vanished before merge; storing a new memory", duplicate_id)

            if explicit_importance is not None:
                base_importance = self._scorer.clamp(explicit_importance)
            else:
                base_importance = self._scorer.initial_score(text, capture_source)

            now = self._clock()
            memory = Memory(
                id=str(uuid4()),
                content=text,
                embedding=embedding,
                source=capture_source,
                tags=explicit_tags,
                importance=base_importance,
                base_importance=base_importance,
                created_at=now,
                last_accessed_at=now,
                supersedes=supersedes,
            )
            self._repository.persist(memory)
            indexed = self._repository.try_index(memory)
            # Logged after the index attempt: a scan that starts later sees it in the index.
            self._recent.record(memory.id, embedding)

        index_error = None
        if not indexed:
            # The first attempt already failed inside the commit section.
            index_error = self._repository.index_with_retry(memory.id)
        self._logger.debug(
            "Stored memory %s (source=%s, importance=%s, searchable=%s)",
            memory.id,
            capture_source.value,
            memory.importance,
            index_error is None,
        )
        return MemoryPipelineResult(memory=memory, duplicate_of=None, index_error=index_error)

    def _merge(self, memory_id: str, tags: list[str]) -> Optional[Memory]:
        now = self._clock()

        def _absorb(existing: Memory) -> Memory:
            existing.access_count += 1
            existing.last_accessed_at = now
            existing.tags = sorted({*existing.tags, *tags})
            existing.importance = self._scorer.recompute(existing, now)
            return existing

        return self._repository.mutate(memory_id, _absorb)
