"""Smoke test for ingesting and retrieving with real Qwen embeddings."""

from __future__ import annotations

import os

import numpy as np
import pytest

pytest.importorskip("torch")
pytest.importorskip("transformers")
pytest.importorskip("huggingface_hub")

from huggingface_hub import snapshot_download  # noqa: E402

from galactica.memory.qwen_embedding import QwenEmbeddingModel  # noqa: E402

_MODEL_SOURCE = os.getenv("QWEN3_EMBEDDING_PATH", "Qwen/Qwen3-Embedding-0.6B")


@pytest.fixture(scope="session")
def cached_repo_path():
    try:
        return snapshot_download(repo_id=_MODEL_SOURCE)
    except Exception as exc:  # pragma: no cover
        pytest.skip(f"Qwen3 모델 다운로드에 실패했습니다: {exc}")


@pytest.fixture(scope="session")
def qwen_embedder(cached_repo_path):
    try:
        return QwenEmbeddingModel(model_path=cached_repo_path, max_length=512)
    except Exception as exc:
        pytest.skip(f"Qwen3 임베딩 모델 초기화 실패: {exc}")


def test_vectors_are_normalised(qwen_embedder):
    batch = qwen_embedder.embed(["Swift build cache lives in DerivedData", "오늘 날씨는 맑습니다."])
    vectors = np.asarray(batch.vectors, dtype=np.float32)

    assert vectors.shape[0] == 2
    assert vectors.shape[1] == qwen_embedder.embedding_size
    assert np.allclose(np.linalg.norm(vectors, axis=1), 1.0, atol=1e-3)


def test_service_retrieves_relevant_capture(make_service, qwen_embedder):
    service = make_service(qwen_embedder, embed_timeout=120.0)
    relevant = service.ingest("Swift build artifacts are cached under DerivedData", "browser", tags=["swift"])
    service.ingest("The team lunch moved to Thursday", "hotkey_capture")

    results = service.query(text="where does Xcode keep build caches?", top_k=1)

    assert [memory.id for memory in results] == [relevant.id]
