"""Exception types raised across the ingestion pipeline."""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for ingestion failures."""


class FetchError(IngestError):
    """A source request failed after exhausting its retry budget."""

    def __init__(self, url: str, attempts: int, cause: Optional[Exception] = None) -> None:
        self.url = url
        self.attempts = attempts
        self.cause = cause
        reason = f": {cause}" if cause else ""
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s){reason}")


class StoreError(IngestError):
    """The document store rejected an operation."""


class StoreUnavailableError(StoreError):
    """The document store could not be reached at startup."""


class DuplicateListingError(StoreError):
    """A save violated a uniqueness constraint (relativeLink or slug)."""


class DocumentExtractionError(IngestError):
    """An attached office document or PDF could not be turned into text."""
