"""Utilities for tracking memory capture and retrieval metrics."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class CaptureMetrics:
    attempts: int = 0
    stored: int = 0
    duplicates: int = 0
    rejected: int = 0
    failed: int = 0
    degraded: int = 0

    def as_dict(self) -> Dict[str, float | int]:
        success_rate = ((self.stored + self.duplicates) / self.attempts) if self.attempts else 0.0
        return {
            "attempts": self.attempts,
            "stored": self.stored,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
            "failed": self.failed,
            "degraded": self.degraded,
            "success_rate": round(success_rate, 3),
        }


@dataclass(slots=True)
class RetrievalMetrics:
    requests: int = 0
    hits: int = 0
    misses: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    mode_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def as_dict(self) -> Dict[str, float | int | Dict[str, int]]:
        hit_rate = (self.hits / self.requests) if self.requests else 0.0
        avg_latency = (self.total_latency_ms / self.requests) if self.requests else 0.0
        return {
            "requests": self.requests,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": round(hit_rate, 3),
            "avg_latency_ms": round(avg_latency, 2),
            "mode_counts": dict(self.mode_counts),
        }


@dataclass(slots=True)
class MemoryMetrics:
    capture: CaptureMetrics = field(default_factory=CaptureMetrics)
    retrieval: RetrievalMetrics = field(default_factory=RetrievalMetrics)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_capture(self, outcome: str) -> None:
        """Count one ingest call. ``outcome``: stored, duplicate, degraded, rejected or failed."""
        with self._lock:
            self.capture.attempts += 1
            if outcome == "stored":
                self.capture.stored += 1
            elif outcome == "degraded":
                self.capture.stored += 1
                self.capture.degraded += 1
            elif outcome == "duplicate":
                self.capture.duplicates += 1
            elif outcome == "rejected":
                self.capture.rejected += 1
            else:
                self.capture.failed += 1

    def record_retrieval(
        self,
        *,
        mode: str,
        match_count: int,
        latency_ms: float,
        success: bool,
    ) -> None:
        with self._lock:
            self.retrieval.requests += 1
            self.retrieval.mode_counts[mode.lower().strip() or "unknown"] += 1
            if not success:
                self.retrieval.errors += 1
                self.retrieval.misses += 1
            elif match_count > 0:
                self.retrieval.hits += 1
            else:
                self.retrieval.misses += 1
            self.retrieval.total_latency_ms += max(latency_ms, 0.0)

    def as_dict(self) -> Dict[str, Dict[str, float | int | Dict[str, int]]]:
        with self._lock:
            return {
                "capture": self.capture.as_dict(),
                "retrieval": self.retrieval.as_dict(),
            }


__all__ = ["MemoryMetrics", "CaptureMetrics", "RetrievalMetrics"]
