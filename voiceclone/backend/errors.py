from __future__ import annotations


class ClientInputError(ValueError):
    """Raised when a request is invalid and should map to HTTP 400."""


class NotFoundError(LookupError):
    """Raised when a referenced file, voice or embedding does not exist."""


class StorageError(RuntimeError):
    """Raised when the persistence layer fails."""
