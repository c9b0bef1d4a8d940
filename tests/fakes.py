"""Test doubles for embedding providers and time."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Sequence

from galactica.memory import EmbeddingProvider


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 10, 3, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class TableEmbedder(EmbeddingProvider):
    """Looks vectors up by text; unknown text is a provider failure."""

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None) -> None:
        self.vectors: Dict[str, Sequence[float]] = dict(vectors or {})
        self.calls = 0
        self._lock = threading.Lock()

    def embed_single(self, text: str) -> list[float]:
        with self._lock:
            self.calls += 1
        if text not in self.vectors:
            raise KeyError(f"no test vector for {text!r}")
        return list(self.vectors[text])


class SlowEmbedder(EmbeddingProvider):
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.calls = 0

    def embed_single(self, text: str) -> list[float]:
        self.calls += 1
        time.sleep(self.delay)
        return [1.0, 0.0, 0.0]


class GatedEmbedder(TableEmbedder):
    """Holds the listed texts until that many callers are embedding at once."""

    def __init__(self, vectors: Dict[str, Sequence[float]], gated: Sequence[str], timeout: float = 5.0) -> None:
        super().__init__(vectors)
        self.gated = set(gated)
        self._barrier = threading.Barrier(len(self.gated), timeout=timeout)

    def embed_single(self, text: str) -> list[float]:
        if text in self.gated:
            self._barrier.wait()
        return super().embed_single(text)


class FlakyIndexMixin:
    """Makes ``upsert`` fail a set number of times before delegating.

    ``on_failure`` is called with the failures still to come, before the
    error is raised.
    """

    failures_left = 0
    on_failure: Optional[Callable[[int], None]] = None

    def upsert(self, *args, **kwargs):
        if self.failures_left > 0:
            self.failures_left -= 1
            if self.on_failure is not None:
                self.on_failure(self.failures_left)
            raise RuntimeError("index unavailable")
        return super().upsert(*args, **kwargs)
