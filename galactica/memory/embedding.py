"""Embedding provider interface and the timeout/retry client around it."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import List, Optional, Sequence

from galactica.core.exceptions import ConfigError, ProviderUnavailable
from galactica.core.logger import get_logger


@dataclass
class EmbeddingBatch:
    """Hold embedding results."""

    vectors: list[list[float]]


class EmbeddingProvider(ABC):
    """Anything that turns text into a fixed-length vector."""

    @abstractmethod
    def embed_single(self, text: str) -> list[float]:
        """Return the embedding for one text."""

    def embed(self, texts: Sequence[str]) -> EmbeddingBatch:
        return EmbeddingBatch(vectors=[self.embed_single(text) for text in texts])

    def embed_query(self, text: str) -> list[float]:
        """Embedding for a retrieval query. Asymmetric models override this."""
        return self.embed_single(text)

    @property
    def embedding_size(self) -> int | None:
        return None


class EmbeddingClient:
    """Calls a provider with a bounded timeout and bounded retries.

    The provider runs on a small worker pool so a hung call cannot block the
    caller past ``timeout``. Every failure mode ends in
    ``ProviderUnavailable``; a timeout is never reported as success. The
    vector dimension is pinned on first use (or by ``dimension``) and
    enforced afterwards.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff: float = 0.5,
        dimension: Optional[int] = None,
        max_workers: int = 4,
    ) -> None:
        self._provider = provider
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        self._dimension = dimension or provider.embedding_size
        self._dimension_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="embed")
        self._logger = get_logger(self.__class__.__name__)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def embed(self, text: str, *, query: bool = False) -> List[float]:
        """Embed a stored capture, or with ``query=True`` a retrieval query."""
        call = self._provider.embed_query if query else self._provider.embed_single
        last_error: Optional[BaseException] = None
        for attempt in range(self._max_retries):
            future = self._executor.submit(call, text)
            try:
                vector = future.result(timeout=self._timeout)
            except FutureTimeoutError as exc:
                future.cancel()
                last_error = exc
                self._logger.warning(
                    "Embedding request timed out after %.2fs (attempt %d/%d)",
                    self._timeout,
                    attempt + 1,
                    self._max_retries,
                )
            except Exception as exc:  # noqa: BLE001 - provider failures are opaque
                last_error = exc
                self._logger.warning(
                    "Embedding provider failed (attempt %d/%d): %s",
                    attempt + 1,
                    self._max_retries,
                    exc,
                )
            else:
                return self._validate(vector)

            if attempt < self._max_retries - 1 and self._backoff > 0:
                time.sleep(self._backoff * (2 ** attempt))

        self._logger.error("Embedding provider unavailable after %d attempts", self._max_retries)
        raise ProviderUnavailable(
            f"Embedding provider unavailable after {self._max_retries} attempts: {last_error!r}"
        ) from last_error

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _validate(self, vector: Sequence[float]) -> List[float]:
        values = [float(value) for value in vector]
        if not values:
            raise ProviderUnavailable("Embedding provider returned an empty vector")
        with self._dimension_lock:
            if self._dimension is None:
                self._dimension = len(values)
                self._logger.info("Embedding dimension pinned to %d", self._dimension)
            elif len(values) != self._dimension:
                raise ConfigError(
                    f"Embedding dimension mismatch: expected {self._dimension}, got {len(values)}"
                )
        return values
