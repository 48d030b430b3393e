"""Exceptions raised by getbinary."""

from __future__ import annotations


class GetBinaryError(Exception):
    """Base class for all getbinary errors."""

    def __init__(self, message: str, name: str | None = None) -> None:
        """Initialize the error with a message and the originating request name."""
        self.message = message
        self.name = name
        super().__init__(message)

    def __str__(self) -> str:
        """Return the message prefixed with the request name when known."""
        if self.name:
            return f"{self.name}: {self.message}"
        return self.message


class ValidationError(GetBinaryError):
    """A binary request (or the config file holding it) is malformed."""


class TransferError(GetBinaryError):
    """Downloading a remote archive failed."""

    def __init__(
        self,
        message: str,
        name: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize the TransferError."""
        super().__init__(message, name)
        self.url = url
        self.status_code = status_code


class ExtractionError(GetBinaryError):
    """An archive could not be unpacked."""


class ExtractionConflictError(ExtractionError):
    """Extraction kept colliding with an existing destination path."""

    def __init__(self, message: str, name: str | None = None, path: str | None = None) -> None:
        """Initialize the ExtractionConflictError."""
        super().__init__(message, name)
        self.path = path


class CacheCorruptionError(GetBinaryError):
    """A cached directory no longer matches its recorded fingerprint.

    Treated as a cache miss by the resolver, never surfaced to callers.
    """


class CacheDocumentError(GetBinaryError):
    """The shared cache document cannot be read or written."""
