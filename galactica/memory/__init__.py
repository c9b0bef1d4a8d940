"""Memory core: ingestion, deduplication, scoring, indexing and retrieval."""

from .deduplicator import MemoryDeduplicator
from .embedding import EmbeddingBatch, EmbeddingClient, EmbeddingProvider
from .factory import create_memory_service
from .importance_scorer import ImportanceScore, ImportanceScorer, ScoringWeights
from .memory_records import DuplicateOf, Memory, MemorySource, MemoryStats, NotFound
from .metrics import MemoryMetrics
from .pipeline import MemoryPipeline, MemoryPipelineResult
from .query_engine import QueryEngine
from .record_locks import RecordLocks
from .retention_policy import MemoryRetentionDecision, MemoryRetentionPolicy
from .service import MemoryService
from .storage import (
    BaseMemoryStore,
    IndexMatch,
    LinearScanIndex,
    MemoryIndex,
    MemoryRepository,
    SqliteMemoryStore,
)

__all__ = [
    "BaseMemoryStore",
    "DuplicateOf",
    "EmbeddingBatch",
    "EmbeddingClient",
    "EmbeddingProvider",
    "ImportanceScore",
    "ImportanceScorer",
    "IndexMatch",
    "LinearScanIndex",
    "Memory",
    "MemoryDeduplicator",
    "MemoryIndex",
    "MemoryMetrics",
    "MemoryPipeline",
    "MemoryPipelineResult",
    "MemoryRepository",
    "MemoryRetentionDecision",
    "MemoryRetentionPolicy",
    "MemoryService",
    "MemorySource",
    "MemoryStats",
    "NotFound",
    "QueryEngine",
    "RecordLocks",
    "ScoringWeights",
    "SqliteMemoryStore",
    "create_memory_service",
]
