"""Local Qwen3 embedding provider.

Qwen3-Embedding is asymmetric: retrieval queries carry a task instruction,
stored captures are embedded as-is. ``embed_single`` serves the capture side
and ``embed_query`` the query side, so the deduplicator compares captures
with captures and the query engine compares queries with captures.
"""

from __future__ import annotations

import os
from typing import List, Optional, Sequence

from galactica.core.exceptions import ConfigError
from galactica.core.logger import get_logger

from .embedding import EmbeddingBatch, EmbeddingProvider

try:  # pragma: no cover - optional dependency
    import torch
    import torch.nn.functional as F
    from transformers import AutoModel, AutoTokenizer
except ImportError as exc:  # pragma: no cover
    raise ConfigError(
        "Qwen 임베딩에는 torch와 transformers가 필요합니다. `pip install galactica-memory[qwen]`을 실행하세요."
    ) from exc


MODEL_PATH_ENV = "QWEN3_EMBEDDING_PATH"
DEVICE_ENV = "QWEN_DEVICE"
DTYPE_ENV = "QWEN_DTYPE"
DEFAULT_MODEL_ID = "Qwen/Qwen3-Embedding-0.6B"
DEFAULT_QUERY_INSTRUCTION = "Given a developer's question, retrieve captured notes that answer it"


def _pick_device(requested: Optional[str]) -> "torch.device":
    if requested:
        return torch.device(requested)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if getattr(torch.backends, "mps", None) is not None and torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


class QwenEmbeddingModel(EmbeddingProvider):
    """Qwen3-Embedding with last-token pooling and L2-normalised output."""

    def __init__(
        self,
        *,
        model_path: str | None = None,
        max_length: int = 2048,
        batch_size: int = 16,
        query_instruction: str | None = DEFAULT_QUERY_INSTRUCTION,
        device: str | None = None,
    ) -> None:
        self._logger = get_logger(self.__class__.__name__)
        source = model_path or os.getenv(MODEL_PATH_ENV, DEFAULT_MODEL_ID)
        self._device = _pick_device(device or os.getenv(DEVICE_ENV))
        dtype = getattr(torch, os.getenv(DTYPE_ENV, "float32"), torch.float32)

        try:
            self._tokenizer = AutoTokenizer.from_pretrained(source, trust_remote_code=True, padding_side="left")
            self._model = AutoModel.from_pretrained(source, trust_remote_code=True, torch_dtype=dtype)
        except Exception as exc:  # noqa: BLE001 - hub, IO and config errors all surface here
            raise ConfigError(f"Qwen 임베딩 모델({source})을 불러오지 못했습니다: {exc}") from exc

        if self._tokenizer.pad_token is None:
            self._tokenizer.pad_token = self._tokenizer.eos_token
        self._model.to(self._device).eval()
        self._max_length = max_length
        self._batch_size = max(1, batch_size)
        self._query_instruction = query_instruction
        self._embedding_size: Optional[int] = getattr(self._model.config, "hidden_size", None)
        self._logger.info("Qwen 임베딩 모델 로드 완료: %s (device=%s)", source, self._device)

    @property
    def embedding_size(self) -> int | None:
        return self._embedding_size

    def embed(self, texts: Sequence[str]) -> EmbeddingBatch:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(self._encode(texts[start : start + self._batch_size]))
        return EmbeddingBatch(vectors=vectors)

    def embed_single(self, text: str) -> list[float]:
        return self._encode([text])[0]

    def embed_query(self, text: str) -> list[float]:
        if self._query_instruction:
            text = f"Instruct: {self._query_instruction}\nQuery:{text}"
        return self._encode([text])[0]

    def _encode(self, texts: Sequence[str]) -> List[List[float]]:
        encoded = self._tokenizer(
            list(texts),
            padding=True,
            truncation=True,
            max_length=self._max_length,
            return_tensors="pt",
        ).to(self._device)
        with torch.inference_mode():
            hidden = self._model(**encoded).last_hidden_state
        # Left padding puts every sequence's final token in the last column.
        pooled = hidden[:, -1]
        return F.normalize(pooled.float(), p=2, dim=1).cpu().tolist()
