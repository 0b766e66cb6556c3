"""Dedupe keys and the per-run index of already ingested listings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set
from urllib.parse import urlsplit

from .models import KeyField
from .store import ListingStore

logger = logging.getLogger(__name__)

KEY_FIELDS = ("relativeLink", "applyLink")


def normalize_relative_link(url: Optional[str]) -> str:
    """Reduce a listing URL to its path.

    Origin, query string and fragment are dropped, as is a single trailing
    slash (except for the root path ``/``).
    """
    if not url or not url.strip():
        return ""
    path = urlsplit(url.strip()).path
    if path.endswith("/") and path != "/":
        path = path[:-1]
    return path


@dataclass(frozen=True)
class DedupeKey:
    field: KeyField
    value: str

    def as_filter(self) -> Dict[str, str]:
        return {self.field: self.value}

    def __str__(self) -> str:
        return f"{self.field}={self.value}"


class DedupeIndex:
    """In-memory set of known dedupe keys.

    Seeded once per run from the store, then updated after every successful
    save so later candidates of the same run see earlier ones. The store's
    unique index remains the authoritative backstop.
    """

    def __init__(self) -> None:
        self._keys: Dict[str, Set[str]] = {f: set() for f in KEY_FIELDS}

    async def seed(self, store: ListingStore) -> int:
        """Load every stored relativeLink/applyLink. Returns the number of keys loaded."""
        docs = await store.find({f: 1 for f in KEY_FIELDS})
        before = len(self)
        for doc in docs:
            for f in KEY_FIELDS:
                value = doc.get(f)
                if value:
                    self._keys[f].add(value)
        loaded = len(self) - before
        logger.info(f"Dedupe index seeded with {loaded} key(s) from {len(docs)} stored listing(s)")
        return loaded

    def is_duplicate(self, key: DedupeKey) -> bool:
        return key.value in self._keys[key.field]

    def register(self, key: DedupeKey) -> None:
        self._keys[key.field].add(key.value)

    def __len__(self) -> int:
        return sum(len(v) for v in self._keys.values())
