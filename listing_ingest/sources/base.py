"""Base classes for source connectors."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx

from ..dedupe import DedupeKey, normalize_relative_link
from ..log import source_logger
from ..models import KeyField, ListingDraft, RawCandidate
from ..net import RetryPolicy, Sleep, fetch_with_retry

PageToken = Any


@dataclass
class Page:
    """One batch of candidates plus the token of the next batch (None when done)."""

    candidates: List[RawCandidate] = field(default_factory=list)
    next_token: Optional[PageToken] = None


class ListingSource(ABC):
    """Abstract base class for a listing source connector.

    The pipeline walks pages starting at ``first_page_token``, asks
    ``dedupe_key`` for each candidate and only calls ``load_draft`` (which may
    hit a detail page) for candidates it has not seen yet.
    """

    name: str
    base_url: str
    key_field: KeyField = "relativeLink"
    max_candidates: int = 100
    first_page_token: PageToken = 0

    def __init__(
        self,
        max_retries: int = 3,
        backoff_s: float = 2.0,
        max_candidates: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.retry = RetryPolicy(max_retries=max_retries, backoff_s=backoff_s)
        if max_candidates is not None:
            self.max_candidates = max_candidates
        self._sleep = sleep
        self.log = source_logger(type(self).__module__, self.name)

    async def _get(
        self, client: httpx.AsyncClient, url: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await fetch_with_retry(client, url, params=params, policy=self.retry, sleep=self._sleep)

    def absolute_url(self, link: str) -> str:
        return urljoin(self.base_url + "/", link)

    def dedupe_key(self, candidate: RawCandidate) -> Optional[DedupeKey]:
        """Key used to detect already stored listings; None when the candidate has no usable link."""
        relative = normalize_relative_link(getattr(candidate, "link", ""))
        if not relative:
            return None
        return DedupeKey("relativeLink", relative)

    @abstractmethod
    async def fetch_page(self, client: httpx.AsyncClient, token: PageToken) -> Page:
        """Fetch one page/batch of raw candidates.

        Raises:
            FetchError: The page could not be fetched within the retry budget.
        """
        raise NotImplementedError

    @abstractmethod
    async def load_draft(self, client: httpx.AsyncClient, candidate: RawCandidate) -> Optional[ListingDraft]:
        """Load detail for a new candidate and extract its fields.

        Returns None when the candidate turns out to be unusable.
        """
        raise NotImplementedError
