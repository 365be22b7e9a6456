"""Storage service exceptions."""
from typing import Optional


class StorageError(Exception):
    """Base storage exception.

    ``key`` and ``operation`` are optional context for log lines.
    """

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.key = key
        self.operation = operation


class NotFoundError(StorageError):
    """Object not found in storage."""


class PermissionDeniedError(StorageError):
    """Permission denied for storage operation."""


class TransientError(StorageError):
    """Transient error (network, rate limit, server error). Safe to retry."""


class ConfigurationError(StorageError):
    """Storage configuration error."""


class ValidationError(StorageError):
    """Invalid key or argument."""
