from __future__ import annotations


class CaptureIndexError(Exception):
    """Base class for every error raised by capture_index."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ConfigurationFault(CaptureIndexError):
    """Fatal at startup: missing setting, unknown backend, uncreatable directory."""


class IndexUnavailable(CaptureIndexError):
    """The backing store or remote service could not be read."""


class BadQuery(CaptureIndexError):
    """The caller asked for something invalid."""


class NoResults(CaptureIndexError):
    """A well-formed query matched nothing."""


class StorageFault(CaptureIndexError):
    """A batch could not be written to the persistent index."""


class CdxFormatError(ValueError):
    """Raised when a CDX line does not have the expected shape."""
