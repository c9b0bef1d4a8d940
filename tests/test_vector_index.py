"""Tests for the exact linear-scan index."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from galactica.core.exceptions import ConfigError
from galactica.memory import Memory, MemorySource
from galactica.memory.storage import LinearScanIndex

NOW = datetime(2025, 10, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(name="index")
def fixture_index() -> LinearScanIndex:
    index = LinearScanIndex()
    index.upsert("swift", [1.0, 0.0, 0.0], ["build", "swift"], importance=5, last_accessed_at=NOW)
    index.upsert("xcode", [0.8, 0.6, 0.0], ["build"], importance=5, last_accessed_at=NOW)
    index.upsert("docs", [0.0, 0.0, 1.0], ["docs"], importance=9, last_accessed_at=NOW)
    return index


def test_search_orders_by_similarity(index):
    matches = index.search([1.0, 0.1, 0.0], top_k=3)

    assert [match.memory_id for match in matches] == ["swift", "xcode", "docs"]
    assert matches[0].similarity > matches[1].similarity > matches[2].similarity


def test_search_respects_top_k(index):
    assert len(index.search([1.0, 0.0, 0.0], top_k=2)) == 2
    assert index.search([1.0, 0.0, 0.0], top_k=0) == []


def test_tag_filter_requires_every_tag(index):
    matches = index.search([0.0, 0.0, 1.0], tag_filter=["Build", "swift"], top_k=5)

    assert [match.memory_id for match in matches] == ["swift"]
    assert index.search([1.0, 0.0, 0.0], tag_filter=["unknown"], top_k=5) == []


def test_ties_break_on_importance_then_recency_then_id():
    index = LinearScanIndex()
    index.upsert("c", [1.0, 0.0], [], importance=3, last_accessed_at=NOW)
    index.upsert("b", [1.0, 0.0], [], importance=3, last_accessed_at=NOW)
    index.upsert("recent", [1.0, 0.0], [], importance=3, last_accessed_at=NOW + timedelta(hours=1))
    index.upsert("heavy", [2.0, 0.0], [], importance=8, last_accessed_at=NOW)

    matches = index.search([1.0, 0.0], top_k=4)

    assert [match.memory_id for match in matches] == ["heavy", "recent", "b", "c"]


def test_remove_and_update_metadata(index):
    assert index.remove("swift") is True
    assert index.remove("swift") is False
    assert "swift" not in index
    assert len(index) == 2

    assert index.update_metadata("xcode", tags=["ios"], importance=1) is True
    assert index.update_metadata("missing", importance=1) is False
    assert index.select(["ios"]) == ["xcode"]
    assert index.select(["build"]) == []


def test_upsert_replaces_existing_entry(index):
    index.upsert("swift", [0.0, 1.0, 0.0], ["ios"], importance=2)

    assert len(index) == 3
    assert index.select(["swift"]) == []
    assert index.search([0.0, 1.0, 0.0], top_k=1)[0].memory_id == "swift"


def test_select_without_filter_lists_everything(index):
    assert index.select() == ["docs", "swift", "xcode"]


def test_dimension_is_pinned_by_first_vector(index):
    assert index.dimension == 3
    with pytest.raises(ConfigError):
        index.upsert("bad", [1.0, 0.0], [])
    with pytest.raises(ConfigError):
        index.search([1.0, 0.0], top_k=1)


def test_search_does_not_mutate_state(index):
    before = (len(index), index.select())

    index.search([1.0, 0.0, 0.0], tag_filter=["build"], top_k=2)

    assert (len(index), index.select()) == before


def test_populate_skips_inactive_memories():
    active = Memory(id="a", content="a", embedding=[1.0, 0.0], source=MemorySource.CLI, tags=["x"])
    retired = Memory(
        id="r", content="r", embedding=[0.0, 1.0], source=MemorySource.CLI, retired_at=NOW
    )
    superseded = Memory(
        id="s", content="s", embedding=[0.0, 1.0], source=MemorySource.CLI, superseded_by="a"
    )
    index = LinearScanIndex()

    assert index.populate([active, retired, superseded]) == 1
    assert index.select() == ["a"]
