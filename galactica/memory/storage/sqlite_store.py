"""SQLite-backed store for memory records."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from galactica.core.exceptions import StorageFailure
from galactica.core.logger import get_logger
from galactica.core.utils import normalise_content

from ..memory_records import Memory
from .base import BaseMemoryStore


_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    content_key TEXT NOT NULL,
    embedding TEXT NOT NULL,
    source TEXT NOT NULL,
    tags TEXT NOT NULL,
    importance INTEGER NOT NULL,
    base_importance INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    last_accessed_at TEXT NOT NULL,
    access_count INTEGER NOT NULL DEFAULT 0,
    supersedes TEXT,
    superseded_by TEXT,
    retired_at TEXT,
    index_pending INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_memories_content_key ON memories(content_key);
CREATE INDEX IF NOT EXISTS idx_memories_pending ON memories(index_pending);
"""

_COLUMNS = (
    "id, content, embedding, source, tags, importance, base_importance, created_at, "
    "last_accessed_at, access_count, supersedes, superseded_by, retired_at"
)
_ACTIVE = "retired_at IS NULL AND superseded_by IS NULL"


class SqliteMemoryStore(BaseMemoryStore):
    """Persist memory records in a lightweight SQLite database.

    Each call opens its own connection, so the store can be shared between
    threads. ``timeout`` bounds how long a call waits on a locked database.
    """

    def __init__(self, database_path: str | Path, *, timeout: float = 5.0) -> None:
        self._path = Path(database_path)
        self._timeout = timeout
        self._logger = get_logger(self.__class__.__name__)
        self._initialise()

    def insert(self, memory: Memory, *, index_pending: bool = True) -> None:
        payload = self._to_row(memory)
        payload["index_pending"] = 1 if index_pending else 0
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO memories
                    (id, content, content_key, embedding, source, tags, importance, base_importance,
                     created_at, last_accessed_at, access_count, supersedes, superseded_by, retired_at,
                     index_pending)
                    VALUES (:id, :content, :content_key, :embedding, :source, :tags, :importance,
                            :base_importance, :created_at, :last_accessed_at, :access_count,
                            :supersedes, :superseded_by, :retired_at, :index_pending)
                    """,
                    payload,
                )
        except sqlite3.IntegrityError as exc:
            raise StorageFailure(f"Memory id {memory.id!r} already exists") from exc

    def update(self, memory: Memory) -> None:
        payload = self._to_row(memory)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE memories SET
                    tags=:tags,
                    importance=:importance,
                    base_importance=:base_importance,
                    last_accessed_at=:last_accessed_at,
                    access_count=:access_count,
                    supersedes=:supersedes,
                    superseded_by=:superseded_by,
                    retired_at=:retired_at
                WHERE id=:id
                """,
                payload,
            )
            if cursor.rowcount == 0:
                raise StorageFailure(f"Memory {memory.id!r} does not exist")

    def get(self, memory_id: str) -> Optional[Memory]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return self._from_row(row) if row else None

    def get_many(self, memory_ids: Sequence[str]) -> Dict[str, Memory]:
        ids = list(dict.fromkeys(memory_ids))
        if not ids:
            return {}
        records: Dict[str, Memory] = {}
        # SQLite caps bound parameters per statement.
        chunk_size = 500
        with self._connect() as conn:
            for start in range(0, len(ids), chunk_size):
                chunk = ids[start : start + chunk_size]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = conn.execute(
                    f"SELECT {_COLUMNS} FROM memories WHERE id IN ({placeholders})",
                    chunk,
                )
                for row in cursor:
                    memory = self._from_row(row)
                    records[memory.id] = memory
        return records

    def list_all(self, *, include_inactive: bool = False) -> Iterable[Memory]:
        query = f"SELECT {_COLUMNS} FROM memories"
        if not include_inactive:
            query += f" WHERE {_ACTIVE}"
        query += " ORDER BY created_at"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._from_row(row) for row in rows]

    def find_by_content_key(self, content_key: str) -> List[Memory]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE content_key = ? AND {_ACTIVE}",
                (content_key,),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def delete(self, memory_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            return cursor.rowcount > 0

    def set_index_pending(self, memory_id: str, pending: bool) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE memories SET index_pending = ? WHERE id = ?",
                (1 if pending else 0, memory_id),
            )

    def list_index_pending(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id FROM memories WHERE index_pending = 1 AND {_ACTIVE} ORDER BY created_at"
            ).fetchall()
        return [row[0] for row in rows]

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=self._timeout)
        except sqlite3.Error as exc:
            raise StorageFailure(f"Cannot open SQLite database: {exc}") from exc
        try:
            with conn:
                yield conn
        except StorageFailure:
            raise
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            self._logger.error("SQLite operation failed: %s", exc)
            raise StorageFailure(f"SQLite operation failed: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _to_row(memory: Memory) -> Dict[str, object]:
        document = memory.to_document()
        document["content_key"] = normalise_content(memory.content)
        document["embedding"] = json.dumps(document["embedding"])
        document["tags"] = json.dumps(document["tags"], ensure_ascii=False)
        return document

    @staticmethod
    def _from_row(row: Sequence[object]) -> Memory:
        return Memory.from_document(
            {
                "id": row[0],
                "content": row[1],
                "embedding": json.loads(row[2]),
                "source": row[3],
                "tags": json.loads(row[4]),
                "importance": row[5],
                "base_importance": row[6],
                "created_at": row[7],
                "last_accessed_at": row[8],
                "access_count": row[9],
                "supersedes": row[10],
                "superseded_by": row[11],
                "retired_at": row[12],
            }
        )

    def _initialise(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Cannot create store directory {self._path.parent}: {exc}") from exc
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        self._logger.debug("SQLite memory store initialised at %s", self._path)
