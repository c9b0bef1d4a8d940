"""Retention policy hook for retiring stale memories.

The core never runs a policy on its own. An operator (or an external
scheduled job) calls ``MemoryService.apply_retention`` with a policy, and
matching memories are soft-retired, not deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from galactica.core.utils import ensure_aware, utcnow

from .memory_records import Memory


@dataclass(slots=True)
class MemoryRetentionDecision:
    """Outcome returned by the retention policy."""

    should_retire: bool
    reason: str


class MemoryRetentionPolicy:
    """Retire memories that are old, unimportant and rarely used.

    All three conditions must hold. Memories that are part of an edit chain
    as the current head are treated like any other memory; superseded and
    already retired ones are left alone.
    """

    def __init__(
        self,
        *,
        max_age_days: float = 180.0,
        max_importance: int = 2,
        max_access_count: int = 0,
    ) -> None:
        self._max_age = timedelta(days=max_age_days)
        self._max_importance = max_importance
        self._max_access_count = max_access_count

    def evaluate(self, memory: Memory, now: Optional[datetime] = None) -> MemoryRetentionDecision:
        if not memory.is_active:
            return MemoryRetentionDecision(False, "already retired or superseded")

        current_time = ensure_aware(now) if now else utcnow()
        idle = current_time - ensure_aware(memory.last_accessed_at)
        if idle < self._max_age:
            return MemoryRetentionDecision(False, f"accessed {idle.days} days ago")
        if memory.importance > self._max_importance:
            return MemoryRetentionDecision(False, f"importance {memory.importance} above {self._max_importance}")
        if memory.access_count > self._max_access_count:
            return MemoryRetentionDecision(False, f"accessed {memory.access_count} times")
        return MemoryRetentionDecision(
            True,
            f"idle for {idle.days} days with importance {memory.importance} "
            f"and {memory.access_count} accesses",
        )
