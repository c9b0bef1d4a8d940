"""Shared fixtures for the memory core tests."""

from __future__ import annotations

import pytest

from galactica.core.config import MemoryConfig
from galactica.memory import EmbeddingProvider, MemoryService, create_memory_service

from fakes import FakeClock


@pytest.fixture(name="clock")
def fixture_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="make_service")
def fixture_make_service(tmp_path, clock):
    """Build a service on a temporary SQLite store with fast retries."""
    services = []

    def _make(provider: EmbeddingProvider, **overrides) -> MemoryService:
        index = overrides.pop("index", None)
        settings = {
            "store_path": tmp_path / "memories.db",
            "retry_backoff": 0.0,
            "embed_timeout": 1.0,
        }
        settings.update(overrides)
        service = create_memory_service(MemoryConfig(**settings), provider=provider, index=index, clock=clock)
        services.append(service)
        return service

    yield _make
    for service in services:
        service.close()
