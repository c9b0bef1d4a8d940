"""
galactica/core/utils.py
Shared helpers for timestamps and text/tag normalisation.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .exceptions import InvalidInput


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix the two kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalise_content(content: str) -> str:
    """Key used for exact duplicate matching: trimmed and case-folded."""
    return content.strip().casefold()


def normalise_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Return a sorted, de-duplicated list of trimmed, lower-cased tags."""
    if tags is None:
        return []
    if isinstance(tags, str):
        raise InvalidInput("tags must be a list of strings, not a single string")
    cleaned = set()
    for tag in tags:
        if not isinstance(tag, str):
            raise InvalidInput(f"tag must be a string, got {type(tag).__name__}")
        value = tag.strip().lower()
        if value:
            cleaned.add(value)
    return sorted(cleaned)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
