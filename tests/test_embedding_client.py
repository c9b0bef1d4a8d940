"""Tests for the timeout/retry wrapper around embedding providers."""

from __future__ import annotations

import pytest

from galactica.core.exceptions import ConfigError, ProviderUnavailable
from galactica.memory import EmbeddingClient, EmbeddingProvider

from fakes import SlowEmbedder, TableEmbedder


class FlakyProvider(EmbeddingProvider):
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def embed_single(self, text: str) -> list[float]:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("model server restarting")
        return [0.5, 0.5]


class SizedProvider(TableEmbedder):
    @property
    def embedding_size(self) -> int:
        return 3


def test_retries_until_provider_recovers():
    provider = FlakyProvider(failures=2)
    client = EmbeddingClient(provider, max_retries=3, backoff=0.0)

    assert client.embed("hello") == [0.5, 0.5]
    assert provider.calls == 3
    client.close()


def test_gives_up_after_bounded_retries():
    provider = FlakyProvider(failures=10)
    client = EmbeddingClient(provider, max_retries=2, backoff=0.0)

    with pytest.raises(ProviderUnavailable) as excinfo:
        client.embed("hello")

    assert provider.calls == 2
    assert excinfo.value.retryable
    client.close()


def test_timeout_is_reported_as_unavailable():
    client = EmbeddingClient(SlowEmbedder(delay=0.5), timeout=0.05, max_retries=1, backoff=0.0)

    with pytest.raises(ProviderUnavailable):
        client.embed("slow")
    client.close()


def test_dimension_is_pinned_on_first_vector():
    client = EmbeddingClient(TableEmbedder({"a": [1, 2, 3], "b": [1, 2]}), backoff=0.0)

    assert client.embed("a") == [1.0, 2.0, 3.0]
    assert client.dimension == 3
    with pytest.raises(ConfigError):
        client.embed("b")
    client.close()


def test_provider_reported_size_is_enforced():
    client = EmbeddingClient(SizedProvider({"short": [1.0]}), backoff=0.0)

    assert client.dimension == 3
    with pytest.raises(ConfigError):
        client.embed("short")
    client.close()


class AsymmetricProvider(TableEmbedder):
    def embed_query(self, text: str) -> list[float]:
        return self.embed_single(f"query: {text}")


def test_query_embeddings_use_the_query_side():
    provider = AsymmetricProvider({"notes": [1.0, 0.0], "query: notes": [0.0, 1.0]})
    client = EmbeddingClient(provider, backoff=0.0)

    assert client.embed("notes") == [1.0, 0.0]
    assert client.embed("notes", query=True) == [0.0, 1.0]
    # Symmetric providers embed queries like captures.
    assert TableEmbedder({"notes": [0.0, 1.0]}).embed_query("notes") == [0.0, 1.0]
    client.close()
