"""Tests for near-duplicate detection."""

from __future__ import annotations

from datetime import timedelta

import pytest

from galactica.memory import LinearScanIndex, Memory, MemoryDeduplicator, MemorySource
from galactica.memory.deduplicator import RecentCaptures
from galactica.memory.storage.sqlite_store import SqliteMemoryStore


@pytest.fixture(name="parts")
def fixture_parts(tmp_path, clock):
    store = SqliteMemoryStore(tmp_path / "memories.db")
    index = LinearScanIndex()
    deduplicator = MemoryDeduplicator(
        store,
        index,
        similarity_threshold=0.92,
        recency_window=timedelta(hours=24),
        clock=clock,
    )
    return store, index, deduplicator


def _add(store, index, clock, memory_id, content, embedding, **kwargs):
    memory = Memory(
        id=memory_id,
        content=content,
        embedding=embedding,
        source=MemorySource.API,
        created_at=clock(),
        last_accessed_at=clock(),
        **kwargs,
    )
    store.insert(memory, index_pending=False)
    if memory.is_active:
        index.upsert(memory_id, embedding, memory.tags, last_accessed_at=memory.last_accessed_at)
    return memory


def test_exact_content_matches_at_any_age(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "m1", "Bump the minimum iOS target", [1.0, 0.0])
    clock.advance(days=90)

    assert deduplicator.find_duplicate([0.0, 1.0], "  bump the minimum ios TARGET ") == "m1"


def test_semantic_match_inside_window(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "m1", "Bump the minimum iOS target", [1.0, 0.0])
    clock.advance(hours=23)

    assert deduplicator.find_duplicate([0.99, 0.05], "Raise the iOS deployment target") == "m1"


def test_semantic_match_outside_window_is_new(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "m1", "Bump the minimum iOS target", [1.0, 0.0])
    clock.advance(hours=25)

    assert deduplicator.find_duplicate([0.99, 0.05], "Raise the iOS deployment target") is None


def test_similarity_below_threshold_is_new(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "m1", "Swift build cache lives in DerivedData", [1.0, 0.0])

    assert deduplicator.find_duplicate([0.8, 0.6], "Clean the module cache") is None


def test_most_recently_accessed_candidate_wins(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "older", "note one", [1.0, 0.0])
    clock.advance(minutes=5)
    _add(store, index, clock, "newer", "note two", [0.999, 0.01])

    assert deduplicator.find_duplicate([1.0, 0.0], "note three") == "newer"


def test_excluded_and_inactive_records_are_skipped(parts, clock):
    store, index, deduplicator = parts
    _add(store, index, clock, "self", "same words", [1.0, 0.0])
    _add(store, index, clock, "retired", "other words", [1.0, 0.0], retired_at=clock())

    assert deduplicator.find_duplicate([1.0, 0.0], "same words", exclude={"self"}) is None


def test_captures_committed_after_the_scan_still_match(parts, clock):
    store, index, deduplicator = parts
    recent = RecentCaptures()
    checkpoint = recent.checkpoint()
    similar = deduplicator.similar_ids([1.0, 0.0])
    # Committed by another capture while this one was scanning; not indexed yet.
    memory = _add(store, LinearScanIndex(), clock, "late", "Pin Xcode to 16.2", [2.0, 0.1])
    recent.record(memory.id, memory.embedding)

    late = recent.since(checkpoint)
    similar += deduplicator.similar_among([1.0, 0.0], late)

    assert similar == ["late"]
    assert deduplicator.resolve("Use Xcode 16.2 everywhere", similar) == "late"


def test_recent_captures_report_eviction():
    recent = RecentCaptures(capacity=2)
    checkpoint = recent.checkpoint()
    recent.record("a", [1.0, 0.0])
    recent.record("b", [0.0, 1.0])

    assert [memory_id for memory_id, _ in recent.since(checkpoint)] == ["a", "b"]

    recent.record("c", [1.0, 1.0])

    assert recent.since(checkpoint) is None
    assert [memory_id for memory_id, _ in recent.since(checkpoint + 1)] == ["b", "c"]
