"""Custom exception hierarchy for embedvault."""

from __future__ import annotations


class EmbedVaultError(Exception):
    """Base exception for all embedvault errors."""


class StorageError(EmbedVaultError):
    """Raised on storage backend failures (DB connection, disk I/O, etc.)."""


class RetryExhaustedError(StorageError):
    """Raised when a retried operation fails on every attempt.

    The last underlying error is chained as ``__cause__`` and kept on
    :attr:`last_error`.
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "no error captured"
        super().__init__(f"{operation} failed after {attempts} attempts: {detail}")


class DimensionMismatchError(EmbedVaultError, ValueError):
    """Raised when a vector's length disagrees with its recorded dimensionality."""


class ConfigurationError(EmbedVaultError):
    """Raised when required configuration is missing or invalid."""
