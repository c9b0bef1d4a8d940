"""Per-record locks for memory mutations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class RecordLocks:
    """Hands out one reentrant lock per memory id.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the table stays proportional to in-flight mutations rather than
    to the corpus size.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, memory_id: str) -> Iterator[None]:
        with self._guard:
            slot = self._locks.get(memory_id)
            if slot is None:
                slot = [threading.RLock(), 0]
                self._locks[memory_id] = slot
            slot[1] += 1
        lock = slot[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    self._locks.pop(memory_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
