"""Source connectors, addressable by name from the CLI."""

from __future__ import annotations

from typing import Dict, List, Type

from ..config import Settings
from .base import ListingSource, Page
from .eu_agencies import EUAgenciesSource
from .eu_careers import EUCareersSource
from .euractiv import EuractivSource
from .eurobrussels import EurobrusselsSource
from .jobsin import JobsinSource

SOURCES: Dict[str, Type[ListingSource]] = {
    cls.name: cls
    for cls in (EUCareersSource, EuractivSource, EurobrusselsSource, JobsinSource, EUAgenciesSource)
}


def source_names() -> List[str]:
    return list(SOURCES)


def create_source(name: str, settings: Settings) -> ListingSource:
    """Instantiate a connector with the retry settings from ``settings``.

    Raises:
        KeyError: Unknown source name.
        ValueError: The connector needs a credential that is not configured.
    """
    cls = SOURCES[name]
    kwargs = dict(max_retries=settings.http_max_retries, backoff_s=settings.http_backoff_s)
    if cls is JobsinSource:
        return JobsinSource(settings.storyblok_token or "", **kwargs)
    return cls(**kwargs)


__all__ = ["ListingSource", "Page", "SOURCES", "create_source", "source_names"]
