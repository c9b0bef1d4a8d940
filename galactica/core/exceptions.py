"""Custom exception hierarchy for the Galactica memory core."""

from __future__ import annotations


class GalacticaError(Exception):
    """Base class for project-specific exceptions."""

    retryable = False


class ConfigError(GalacticaError):
    """Raised when configuration loading or validation fails."""


class InvalidInput(GalacticaError):
    """Raised when a caller passes malformed arguments. Never retried."""


class ProviderUnavailable(GalacticaError):
    """Raised when the embedding provider times out or fails after retries."""

    retryable = True


class StorageFailure(GalacticaError):
    """Raised when the storage backend cannot read or write a record."""


class IndexDegraded(GalacticaError):
    """A record is durable but not searchable yet.

    Ingestion reports this state instead of raising it; the record stays
    flagged until ``reconcile_index`` succeeds.
    """

    retryable = True

    def __init__(self, memory_id: str, message: str | None = None) -> None:
        super().__init__(message or f"memory {memory_id} is stored but not indexed")
        self.memory_id = memory_id
