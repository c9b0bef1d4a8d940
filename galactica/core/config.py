"""Configuration loader for the memory core."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

_PREFIX = "GALACTICA_"
_INDEX_BACKENDS = ("linear", "faiss")


def _coerce_optional(value: Optional[str]) -> Optional[str]:
    """Return stripped value or ``None`` when the input is empty."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _env(name: str) -> Optional[str]:
    return _coerce_optional(os.getenv(f"{_PREFIX}{name}"))


def _env_float(name: str, default: float, logger: logging.Logger) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s%s=%r, using %s", _PREFIX, name, raw, default)
        return default


def _env_int(name: str, default: int, logger: logging.Logger) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s%s=%r, using %s", _PREFIX, name, raw, default)
        return default


@dataclass(frozen=True)
class MemoryConfig:
    """Immutable runtime configuration for the memory core.

    Every tunable policy constant (duplicate threshold, recency window, decay
    half-life, retry budgets) lives here so deployments can adjust them
    without touching code.
    """

    store_path: Path = Path("data/memory/galactica.db")
    embedding_dimension: Optional[int] = None
    duplicate_threshold: float = 0.92
    duplicate_window_hours: float = 24.0
    duplicate_candidate_limit: int = 20
    importance_min: int = 0
    importance_max: int = 10
    decay_halflife_days: float = 30.0
    popular_access_threshold: int = 10
    access_weight: float = 0.5
    max_usage_boost: float = 3.0
    max_top_k: int = 100
    embed_timeout: float = 10.0
    embed_retries: int = 3
    retry_backoff: float = 0.5
    index_retries: int = 3
    storage_timeout: float = 5.0
    index_backend: str = "linear"
    index_shards: int = 4
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    env_path: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.importance_min >= self.importance_max:
            raise ConfigError(
                f"importance_min ({self.importance_min}) must be below importance_max ({self.importance_max})"
            )
        if not 0.0 < self.duplicate_threshold <= 1.0:
            raise ConfigError(f"duplicate_threshold must be in (0, 1], got {self.duplicate_threshold}")
        if self.index_backend not in _INDEX_BACKENDS:
            supported = ", ".join(_INDEX_BACKENDS)
            raise ConfigError(f"Unsupported index backend '{self.index_backend}'. Supported: {supported}.")
        if self.embedding_dimension is not None and self.embedding_dimension <= 0:
            raise ConfigError(f"embedding_dimension must be positive, got {self.embedding_dimension}")
        if self.max_top_k <= 0:
            raise ConfigError(f"max_top_k must be positive, got {self.max_top_k}")
        if self.embed_timeout <= 0 or self.storage_timeout <= 0:
            raise ConfigError("Timeouts must be positive.")

    @property
    def duplicate_window(self) -> timedelta:
        return timedelta(hours=self.duplicate_window_hours)

    @classmethod
    def load(
        cls,
        env_file: Optional[Path | str] = None,
        *,
        override_env: Optional[MutableMapping[str, str]] = None,
    ) -> "MemoryConfig":
        """Load configuration from ``.env`` and the current environment."""
        env_path = Path(env_file) if env_file is not None else Path.cwd() / ".env"

        logger = logging.getLogger(__name__)
        env_path_str: Optional[str] = None
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=True)
            logger.debug("Loaded .env file", extra={"env_path": str(env_path)})
            env_path_str = str(env_path)
        else:
            load_dotenv(override=False)
            logger.debug(".env file not found; using process environment", extra={"env_path": str(env_path)})

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        defaults = cls()
        dimension_raw = _env("EMBEDDING_DIMENSION")
        embedding_dimension: Optional[int] = None
        if dimension_raw is not None:
            try:
                embedding_dimension = int(dimension_raw)
            except ValueError as exc:
                raise ConfigError(f"GALACTICA_EMBEDDING_DIMENSION must be an integer, got {dimension_raw!r}") from exc

        config = cls(
            store_path=Path(_env("STORE_PATH") or defaults.store_path),
            embedding_dimension=embedding_dimension,
            duplicate_threshold=_env_float("DUPLICATE_THRESHOLD", defaults.duplicate_threshold, logger),
            duplicate_window_hours=_env_float("DUPLICATE_WINDOW_HOURS", defaults.duplicate_window_hours, logger),
            duplicate_candidate_limit=_env_int(
                "DUPLICATE_CANDIDATE_LIMIT", defaults.duplicate_candidate_limit, logger
            ),
            importance_min=_env_int("IMPORTANCE_MIN", defaults.importance_min, logger),
            importance_max=_env_int("IMPORTANCE_MAX", defaults.importance_max, logger),
            decay_halflife_days=_env_float("DECAY_HALFLIFE_DAYS", defaults.decay_halflife_days, logger),
            popular_access_threshold=_env_int(
                "POPULAR_ACCESS_THRESHOLD", defaults.popular_access_threshold, logger
            ),
            access_weight=_env_float("ACCESS_WEIGHT", defaults.access_weight, logger),
            max_usage_boost=_env_float("MAX_USAGE_BOOST", defaults.max_usage_boost, logger),
            max_top_k=_env_int("MAX_TOP_K", defaults.max_top_k, logger),
            embed_timeout=_env_float("EMBED_TIMEOUT", defaults.embed_timeout, logger),
            embed_retries=_env_int("EMBED_RETRIES", defaults.embed_retries, logger),
            retry_backoff=_env_float("RETRY_BACKOFF", defaults.retry_backoff, logger),
            index_retries=_env_int("INDEX_RETRIES", defaults.index_retries, logger),
            storage_timeout=_env_float("STORAGE_TIMEOUT", defaults.storage_timeout, logger),
            index_backend=(_env("INDEX_BACKEND") or defaults.index_backend).lower(),
            index_shards=_env_int("INDEX_SHARDS", defaults.index_shards, logger),
            log_level=(_env("LOG_LEVEL") or defaults.log_level).upper(),
            log_dir=_env("LOG_DIR"),
            env_path=env_path_str,
        )
        logger.debug("Memory configuration resolved", extra={"config": config.as_dict()})
        return config

    def as_dict(self) -> Mapping[str, Any]:
        """Expose configuration values for debugging or serialization."""
        return {
            "store_path": str(self.store_path),
            "embedding_dimension": self.embedding_dimension,
            "duplicate_threshold": self.duplicate_threshold,
            "duplicate_window_hours": self.duplicate_window_hours,
            "duplicate_candidate_limit": self.duplicate_candidate_limit,
            "importance_min": self.importance_min,
            "importance_max": self.importance_max,
            "decay_halflife_days": self.decay_halflife_days,
            "popular_access_threshold": self.popular_access_threshold,
            "access_weight": self.access_weight,
            "max_usage_boost": self.max_usage_boost,
            "max_top_k": self.max_top_k,
            "embed_timeout": self.embed_timeout,
            "embed_retries": self.embed_retries,
            "retry_backoff": self.retry_backoff,
            "index_retries": self.index_retries,
            "storage_timeout": self.storage_timeout,
            "index_backend": self.index_backend,
            "index_shards": self.index_shards,
            "log_level": self.log_level,
            "log_dir": self.log_dir,
        }
