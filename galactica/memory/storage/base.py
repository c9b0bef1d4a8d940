"""Interfaces for memory storage and index operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from ..memory_records import Memory


class BaseMemoryStore(ABC):
    """Durable storage for memory records, vectors included.

    Implementations raise ``StorageFailure`` for any backend error and must
    round-trip every ``Memory`` field losslessly.
    """

    @abstractmethod
    def insert(self, memory: Memory, *, index_pending: bool = True) -> None:
        """Persist a new record. Fails if the id already exists."""

    @abstractmethod
    def update(self, memory: Memory) -> None:
        """Persist the mutable fields of an existing record."""

    @abstractmethod
    def get(self, memory_id: str) -> Optional[Memory]:
        """Return the record or ``None``."""

    @abstractmethod
    def get_many(self, memory_ids: Sequence[str]) -> Dict[str, Memory]:
        """Return the records that exist, keyed by id."""

    @abstractmethod
    def list_all(self, *, include_inactive: bool = False) -> Iterable[Memory]:
        """Return stored records; retired and superseded ones only on request."""

    @abstractmethod
    def find_by_content_key(self, content_key: str) -> List[Memory]:
        """Return active records whose normalised content equals ``content_key``."""

    @abstractmethod
    def delete(self, memory_id: str) -> bool:
        """Physically remove a record. Returns ``False`` when it did not exist."""

    @abstractmethod
    def set_index_pending(self, memory_id: str, pending: bool) -> None:
        """Flag or clear a record that is stored but not yet searchable."""

    @abstractmethod
    def list_index_pending(self) -> List[str]:
        """Ids of records waiting for index reconciliation."""


class MemoryIndex(ABC):
    """Searchable structure over memory vectors and tags.

    Implementations are interchangeable behind this interface; ``search`` and
    ``select`` never mutate state.
    """

    @abstractmethod
    def upsert(
        self,
        memory_id: str,
        embedding: Sequence[float],
        tags: Iterable[str],
        *,
        importance: int = 0,
        last_accessed_at: Optional[datetime] = None,
    ) -> None:
        """Insert or replace the entry for a memory."""

    @abstractmethod
    def update_metadata(
        self,
        memory_id: str,
        *,
        tags: Optional[Iterable[str]] = None,
        importance: Optional[int] = None,
        last_accessed_at: Optional[datetime] = None,
    ) -> bool:
        """Refresh tags or ranking fields. Returns ``False`` for unknown ids."""

    @abstractmethod
    def remove(self, memory_id: str) -> bool:
        """Drop the entry for a memory. Returns ``False`` for unknown ids."""

    @abstractmethod
    def search(
        self,
        query_embedding: Sequence[float],
        *,
        tag_filter: Optional[Iterable[str]] = None,
        top_k: int = 5,
    ) -> Sequence["IndexMatch"]:
        """Return the most similar entries carrying every tag in ``tag_filter``."""

    @abstractmethod
    def select(self, tag_filter: Optional[Iterable[str]] = None) -> List[str]:
        """Return ids of every entry carrying every tag in ``tag_filter``."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def __contains__(self, memory_id: object) -> bool:
        ...

    def populate(self, memories: Iterable[Memory]) -> int:
        """Load active memories, typically on startup. Returns the count."""
        count = 0
        for memory in memories:
            if not memory.is_active:
                continue
            self.upsert(
                memory.id,
                memory.embedding,
                memory.tags,
                importance=memory.importance,
                last_accessed_at=memory.last_accessed_at,
            )
            count += 1
        return count


class IndexMatch:
    """Result entry returned by similarity searches."""

    __slots__ = ("memory_id", "similarity")

    def __init__(self, memory_id: str, similarity: float) -> None:
        self.memory_id = memory_id
        self.similarity = similarity

    def __iter__(self):
        yield self.memory_id
        yield self.similarity

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IndexMatch):
            return NotImplemented
        return self.memory_id == other.memory_id and self.similarity == other.similarity

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"IndexMatch(memory_id={self.memory_id!r}, similarity={self.similarity!r})"
