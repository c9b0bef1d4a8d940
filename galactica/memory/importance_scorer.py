"""Importance scoring for memories.

Initial scores come from the capture itself:
- Source (a deliberate API store outranks a passive capture)
- Content length (longer, more substantive captures, with diminishing returns)
- Marker keywords (decisions, fixes, explicit "remember this" notes)

Recomputation blends that authorial signal with usage:
- Access frequency (logarithmic boost per retrieval)
- Temporal decay with age since capture (exponential, half-life based)

A retrieval only adds to the usage term; it never resets the decay clock.
Popular memories (many accesses) stop decaying. Scores are recomputed lazily
whenever a memory is read or updated; nothing sweeps them in the background.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from galactica.core.config import MemoryConfig
from galactica.core.logger import get_logger
from galactica.core.utils import ensure_aware, round_half_up, utcnow

from .memory_records import Memory, MemorySource

_SECONDS_PER_DAY = 24 * 3600

_DEFAULT_SOURCE_BASE: Dict[MemorySource, float] = {
    MemorySource.API: 6.0,
    MemorySource.CLI: 5.0,
    MemorySource.REPOSITORY_ANALYSIS: 4.0,
    MemorySource.BROWSER: 3.0,
    MemorySource.HOTKEY_CAPTURE: 3.0,
}

_DEFAULT_MARKERS: Tuple[Tuple[str, ...], ...] = (
    ("decided", "decision", "agreed", "chose", "going with"),
    ("fixed", "fix", "bug", "resolved", "workaround", "root cause"),
    ("important", "remember", "never", "always", "must", "gotcha"),
)


@dataclass
class ImportanceScore:
    """Breakdown of a computed score.

    Attributes:
        total: Final clamped integer score
        base: Authorial component before decay
        decay: Multiplicative decay factor (1.0 means no decay)
        usage: Additive usage boost
    """

    total: int
    base: float = 0.0
    decay: float = 1.0
    usage: float = 0.0


@dataclass
class ScoringWeights:
    """Tunable constants for initial scoring."""

    source_base: Mapping[MemorySource, float] = field(default_factory=lambda: dict(_DEFAULT_SOURCE_BASE))
    markers: Tuple[Tuple[str, ...], ...] = _DEFAULT_MARKERS
    keyword_bonus: float = 1.0
    max_keyword_bonus: float = 2.0
    max_length_bonus: float = 2.0
    words_per_length_step: float = 10.0


class ImportanceScorer:
    """Compute bounded integer importance scores."""

    def __init__(
        self,
        *,
        minimum: int = 0,
        maximum: int = 10,
        decay_halflife_days: float = 30.0,
        popular_access_threshold: int = 10,
        access_weight: float = 0.5,
        max_usage_boost: float = 3.0,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        if minimum >= maximum:
            raise ValueError(f"minimum({minimum}) must be below maximum({maximum})")
        self._minimum = minimum
        self._maximum = maximum
        self._decay_halflife = decay_halflife_days
        self._popular_threshold = popular_access_threshold
        self._access_weight = access_weight
        self._max_usage_boost = max_usage_boost
        self._weights = weights or ScoringWeights()
        self._patterns = [
            re.compile(r"\b(?:" + "|".join(re.escape(word) for word in group) + r")\b", re.IGNORECASE)
            for group in self._weights.markers
        ]
        self._logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config: MemoryConfig, *, weights: Optional[ScoringWeights] = None) -> "ImportanceScorer":
        return cls(
            minimum=config.importance_min,
            maximum=config.importance_max,
            decay_halflife_days=config.decay_halflife_days,
            popular_access_threshold=config.popular_access_threshold,
            access_weight=config.access_weight,
            max_usage_boost=config.max_usage_boost,
            weights=weights,
        )

    @property
    def bounds(self) -> Tuple[int, int]:
        return self._minimum, self._maximum

    def clamp(self, value: float) -> int:
        """Round half-up and clamp into the declared range."""
        if math.isnan(value):
            return self._minimum
        if math.isinf(value):
            return self._maximum if value > 0 else self._minimum
        return max(self._minimum, min(self._maximum, round_half_up(value)))

    def initial_score(self, content: str, source: MemorySource) -> int:
        """Deterministic score for a fresh capture."""
        weights = self._weights
        base = weights.source_base.get(source, float(self._minimum))

        word_count = len(content.split())
        length_bonus = min(weights.max_length_bonus, math.log2(1 + word_count / weights.words_per_length_step))

        matched_groups = sum(1 for pattern in self._patterns if pattern.search(content))
        keyword_bonus = min(weights.max_keyword_bonus, matched_groups * weights.keyword_bonus)

        return self.clamp(base + length_bonus + keyword_bonus)

    def recompute(self, memory: Memory, now: Optional[datetime] = None) -> int:
        return self.explain(memory, now).total

    def explain(self, memory: Memory, now: Optional[datetime] = None) -> ImportanceScore:
        """Score breakdown for ``memory`` at ``now``."""
        current_time = ensure_aware(now) if now else utcnow()

        usage = 0.0
        if memory.access_count > 0:
            usage = min(self._max_usage_boost, self._access_weight * math.log2(1 + memory.access_count))

        decay = 1.0
        if memory.access_count < self._popular_threshold and self._decay_halflife > 0:
            age_days = (current_time - ensure_aware(memory.created_at)).total_seconds() / _SECONDS_PER_DAY
            decay = 2.0 ** (-max(0.0, age_days) / self._decay_halflife)

        base = float(memory.base_importance)
        return ImportanceScore(
            total=self.clamp(base * decay + usage),
            base=base,
            decay=decay,
            usage=usage,
        )
