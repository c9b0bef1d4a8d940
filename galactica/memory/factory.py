"""Factory helpers for wiring up the memory service."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Callable, Optional

from galactica.core.config import MemoryConfig
from galactica.core.exceptions import ConfigError
from galactica.core.logger import get_logger, setup_logging
from galactica.core.utils import utcnow

from .deduplicator import MemoryDeduplicator
from .embedding import EmbeddingClient, EmbeddingProvider
from .importance_scorer import ImportanceScorer, ScoringWeights
from .pipeline import MemoryPipeline
from .query_engine import QueryEngine
from .service import MemoryService
from .storage import BaseMemoryStore, LinearScanIndex, MemoryIndex, MemoryRepository, SqliteMemoryStore

MEMORY_INSTRUCTION_ENV = "GALACTICA_EMBED_INSTRUCTION"


def create_index(config: MemoryConfig, dimension: Optional[int]) -> MemoryIndex:
    """Build the index backend named in the configuration."""
    if config.index_backend == "faiss":
        # Allow duplicated OpenMP runtimes (PyTorch/FAISS on macOS can each bundle libomp).
        os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")
        from .storage.faiss_index import FaissVectorIndex

        if dimension is None:
            raise ConfigError("The faiss index needs GALACTICA_EMBEDDING_DIMENSION or a provider that reports it.")
        return FaissVectorIndex(dimension, shards=config.index_shards)
    return LinearScanIndex(dimension)


def create_default_provider(instruction: Optional[str] = None) -> EmbeddingProvider:
    """Local Qwen3 embedding model; needs the ``qwen`` extra installed."""
    from .qwen_embedding import DEFAULT_QUERY_INSTRUCTION, QwenEmbeddingModel

    instruction = instruction or os.getenv(MEMORY_INSTRUCTION_ENV) or DEFAULT_QUERY_INSTRUCTION
    return QwenEmbeddingModel(query_instruction=instruction)


def create_memory_service(
    config: Optional[MemoryConfig] = None,
    *,
    provider: Optional[EmbeddingProvider] = None,
    store: Optional[BaseMemoryStore] = None,
    index: Optional[MemoryIndex] = None,
    weights: Optional[ScoringWeights] = None,
    clock: Callable[[], datetime] = utcnow,
) -> MemoryService:
    """Create a fully wired MemoryService.

    Anything not passed in is built from ``config``: SQLite store at
    ``store_path``, the configured index backend, and the Qwen provider.
    The index is populated from the store and pending records reconciled.
    """
    if config is None:
        config = MemoryConfig.load()
    setup_logging(config.log_level, log_dir=config.log_dir)
    logger = get_logger("MemoryServiceFactory")
    logger.debug("Initialising memory service", extra={"config": dict(config.as_dict())})

    if provider is None:
        provider = create_default_provider()
    embedder = EmbeddingClient(
        provider,
        timeout=config.embed_timeout,
        max_retries=config.embed_retries,
        backoff=config.retry_backoff,
        dimension=config.embedding_dimension,
    )

    if store is None:
        store = SqliteMemoryStore(config.store_path, timeout=config.storage_timeout)
    if index is None:
        index = create_index(config, embedder.dimension)
    scorer = ImportanceScorer.from_config(config, weights=weights)

    repository = MemoryRepository(
        store,
        index,
        scorer,
        index_retries=config.index_retries,
        retry_backoff=config.retry_backoff,
        clock=clock,
    )
    loaded = index.populate(store.list_all())
    repaired = repository.reconcile()
    logger.info("Memory index ready: %d records loaded, %d reconciled", loaded, repaired)

    deduplicator = MemoryDeduplicator.from_config(config, store, index, clock=clock)
    pipeline = MemoryPipeline(repository, embedder, deduplicator, scorer, clock=clock)
    query_engine = QueryEngine(repository, embedder, max_top_k=config.max_top_k, clock=clock)
    return MemoryService(repository, pipeline, query_engine, embedder=embedder, clock=clock)
