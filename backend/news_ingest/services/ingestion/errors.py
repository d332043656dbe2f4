"""
Typed errors raised by the ingestion pipeline.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for pipeline failures attributable to one source."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.source_name = source_name


class InvalidFeedFormat(IngestionError):
    """Response body is not well-formed XML or JSON."""


class FetchError(IngestionError):
    """Network failure or non-2xx response."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source_name)
        self.status_code = status_code


class FetchTimeout(FetchError):
    """The source did not answer within its time budget."""


class PayloadTooLarge(FetchError):
    """Response body exceeded the configured size limit."""


class UnsupportedSourceType(IngestionError):
    """No fetcher exists for this kind of source."""


class StorageError(IngestionError):
    """Persisting articles or health records failed."""
