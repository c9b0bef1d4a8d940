"""Core utilities for the Galactica memory core."""

from .config import MemoryConfig  # noqa: F401
from .exceptions import (  # noqa: F401
    ConfigError,
    GalacticaError,
    IndexDegraded,
    InvalidInput,
    ProviderUnavailable,
    StorageFailure,
)
from .logger import get_logger, setup_logging  # noqa: F401

__all__ = [
    "ConfigError",
    "GalacticaError",
    "IndexDegraded",
    "InvalidInput",
    "MemoryConfig",
    "ProviderUnavailable",
    "StorageFailure",
    "get_logger",
    "setup_logging",
]
