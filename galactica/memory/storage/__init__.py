"""Storage backends and indexes for memory records.

``FaissVectorIndex`` lives in ``galactica.memory.storage.faiss_index`` and is
imported on demand so the core runs without FAISS installed.
"""

from .base import BaseMemoryStore, IndexMatch, MemoryIndex
from .repository import MemoryRepository
from .sqlite_store import SqliteMemoryStore
from .vector_index import LinearScanIndex

__all__ = [
    "BaseMemoryStore",
    "IndexMatch",
    "LinearScanIndex",
    "MemoryIndex",
    "MemoryRepository",
    "SqliteMemoryStore",
]
