"""Data contracts for the memory core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from galactica.core.exceptions import InvalidInput
from galactica.core.utils import ensure_aware, utcnow


class MemorySource(str, Enum):
    """Capture channel that produced a memory."""

    HOTKEY_CAPTURE = "hotkey_capture"
    BROWSER = "browser"
    REPOSITORY_ANALYSIS = "repository_analysis"
    API = "api"
    CLI = "cli"

    @classmethod
    def parse(cls, value: "MemorySource | str") -> "MemorySource":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalised = value.strip().lower().replace("-", "_")
            try:
                return cls(normalised)
            except ValueError:
                pass
        supported = ", ".join(member.value for member in cls)
        raise InvalidInput(f"Unknown capture source {value!r}. Supported: {supported}.")


@dataclass(slots=True)
class Memory:
    """A stored capture with immutable content and mutable metadata."""

    id: str
    content: str
    embedding: List[float]
    source: MemorySource
    tags: List[str] = field(default_factory=list)
    importance: int = 0
    base_importance: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    access_count: int = 0
    supersedes: Optional[str] = None
    superseded_by: Optional[str] = None
    retired_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """Active memories are the only ones the index may expose."""
        return self.retired_at is None and self.superseded_by is None

    def to_document(self) -> Dict[str, Any]:
        """Flatten the record for JSON or database storage."""
        return {
            "id": self.id,
            "content": self.content,
            "embedding": [float(value) for value in self.embedding],
            "source": self.source.value,
            "tags": list(self.tags),
            "importance": self.importance,
            "base_importance": self.base_importance,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "access_count": self.access_count,
            "supersedes": self.supersedes,
            "superseded_by": self.superseded_by,
            "retired_at": self.retired_at.isoformat() if self.retired_at else None,
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Memory":
        retired_raw = document.get("retired_at")
        return cls(
            id=document["id"],
            content=document["content"],
            embedding=[float(value) for value in document["embedding"]],
            source=MemorySource(document["source"]),
            tags=list(document.get("tags") or []),
            importance=int(document["importance"]),
            base_importance=int(document.get("base_importance", document["importance"])),
            created_at=ensure_aware(datetime.fromisoformat(document["created_at"])),
            last_accessed_at=ensure_aware(datetime.fromisoformat(document["last_accessed_at"])),
            access_count=int(document.get("access_count", 0)),
            supersedes=document.get("supersedes"),
            superseded_by=document.get("superseded_by"),
            retired_at=ensure_aware(datetime.fromisoformat(retired_raw)) if retired_raw else None,
        )


@dataclass(frozen=True, slots=True)
class DuplicateOf:
    """Ingestion outcome when the capture merged into an existing memory."""

    existing_id: str
    memory: Optional[Memory] = None


@dataclass(frozen=True, slots=True)
class NotFound:
    """Lookup outcome for an unknown memory id. Returned, never raised."""

    memory_id: str

    def __bool__(self) -> bool:
        return False


@dataclass(slots=True)
class MemoryStats:
    count: int
    tag_distribution: Dict[str, int]
    avg_importance: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "tag_distribution": dict(self.tag_distribution),
            "avg_importance": self.avg_importance,
        }


IngestOutcome = Union[Memory, DuplicateOf]
LookupOutcome = Union[Memory, NotFound]
