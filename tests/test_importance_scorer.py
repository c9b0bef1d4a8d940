"""Tests for initial scoring and lazy recomputation of importance."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from galactica.memory import ImportanceScorer, Memory, MemorySource, ScoringWeights

NOW = datetime(2025, 10, 3, 9, 0, tzinfo=timezone.utc)


def _memory(base: int, *, access_count: int = 0, idle_days: float = 0.0) -> Memory:
    return Memory(
        id="m1",
        content="x",
        embedding=[1.0],
        source=MemorySource.API,
        importance=base,
        base_importance=base,
        created_at=NOW - timedelta(days=idle_days),
        last_accessed_at=NOW - timedelta(days=idle_days),
        access_count=access_count,
    )


def test_initial_score_depends_on_source():
    scorer = ImportanceScorer()
    content = "Fixed permission bug in capture module"

    assert scorer.initial_score(content, MemorySource.API) == 8
    assert scorer.initial_score(content, MemorySource.HOTKEY_CAPTURE) == 5


def test_initial_score_is_deterministic():
    scorer = ImportanceScorer()
    content = "We decided to always pin the toolchain version"

    scores = {scorer.initial_score(content, MemorySource.CLI) for _ in range(5)}

    assert len(scores) == 1


def test_keyword_bonus_is_capped():
    scorer = ImportanceScorer(weights=ScoringWeights(max_length_bonus=0.0))

    # one marker from every group, but only two groups' worth counts
    score = scorer.initial_score("decided fix remember", MemorySource.BROWSER)

    assert score == 5


def test_recompute_without_use_or_age_keeps_base():
    assert ImportanceScorer().recompute(_memory(6), NOW) == 6


def test_recompute_halves_after_one_halflife():
    assert ImportanceScorer().recompute(_memory(6, idle_days=30), NOW) == 3


def test_recompute_adds_usage_boost():
    assert ImportanceScorer().recompute(_memory(6, access_count=3), NOW) == 7


def test_popular_memories_do_not_decay():
    scorer = ImportanceScorer()

    score = scorer.explain(_memory(6, access_count=10, idle_days=300), NOW)

    assert score.decay == 1.0
    assert score.total == 8


def test_usage_boost_is_capped_and_total_clamped():
    score = ImportanceScorer().explain(_memory(10, access_count=1000), NOW)

    assert score.usage == 3.0
    assert score.total == 10


@pytest.mark.parametrize(
    "value, expected",
    [(-4, 0), (4.5, 5), (5.49, 5), (11, 10), (math.nan, 0), (math.inf, 10), (-math.inf, 0)],
)
def test_clamp_rounds_half_up_within_bounds(value, expected):
    assert ImportanceScorer().clamp(value) == expected


def test_custom_bounds():
    scorer = ImportanceScorer(minimum=1, maximum=5)

    assert scorer.bounds == (1, 5)
    assert scorer.recompute(_memory(9, access_count=50), NOW) == 5


def test_invalid_bounds_are_rejected():
    with pytest.raises(ValueError):
        ImportanceScorer(minimum=5, maximum=5)


def test_recent_access_does_not_reset_decay():
    memory = _memory(10, access_count=1, idle_days=120)
    memory.last_accessed_at = NOW

    score = ImportanceScorer().explain(memory, NOW)

    assert score.decay == pytest.approx(0.0625)
    assert score.usage == pytest.approx(0.5)
    assert score.total == 1
