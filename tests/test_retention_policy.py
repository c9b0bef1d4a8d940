"""Tests for the retention policy decisions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from galactica.memory import Memory, MemoryRetentionPolicy, MemorySource

NOW = datetime(2025, 10, 3, 9, 0, tzinfo=timezone.utc)


def _memory(*, idle_days: float, importance: int = 1, access_count: int = 0, **kwargs) -> Memory:
    return Memory(
        id="m1",
        content="scratch",
        embedding=[1.0],
        source=MemorySource.HOTKEY_CAPTURE,
        importance=importance,
        base_importance=importance,
        created_at=NOW - timedelta(days=idle_days),
        last_accessed_at=NOW - timedelta(days=idle_days),
        access_count=access_count,
        **kwargs,
    )


def test_old_unimportant_unused_memory_is_retired():
    decision = MemoryRetentionPolicy(max_age_days=180).evaluate(_memory(idle_days=200), NOW)

    assert decision.should_retire
    assert "200 days" in decision.reason


def test_each_condition_protects_a_memory():
    policy = MemoryRetentionPolicy(max_age_days=180, max_importance=2, max_access_count=0)

    assert not policy.evaluate(_memory(idle_days=10), NOW).should_retire
    assert not policy.evaluate(_memory(idle_days=200, importance=5), NOW).should_retire
    assert not policy.evaluate(_memory(idle_days=200, access_count=1), NOW).should_retire


def test_inactive_memories_are_left_alone():
    policy = MemoryRetentionPolicy()

    assert not policy.evaluate(_memory(idle_days=400, retired_at=NOW), NOW).should_retire
    assert not policy.evaluate(_memory(idle_days=400, superseded_by="m2"), NOW).should_retire
