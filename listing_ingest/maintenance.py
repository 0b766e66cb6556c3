"""Bulk clean-up operations on the listing store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .store import ListingStore

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def delete_by_source(store: ListingStore, source: str) -> int:
    """Delete every listing ingested from ``source``. Returns the number deleted."""
    if not source or not source.strip():
        raise ValueError("source must not be empty")
    deleted = await store.delete_many({"source": source.strip()})
    logger.info(f"Deleted {deleted} listing(s) with source={source!r}")
    return deleted


async def delete_created_between(store: ListingStore, start: datetime, end: datetime) -> int:
    """Delete listings with ``start <= createdAt < end``. Naive bounds are taken as UTC."""
    start, end = _as_utc(start), _as_utc(end)
    if end <= start:
        raise ValueError(f"empty range: {start.isoformat()} .. {end.isoformat()}")
    deleted = await store.delete_many({"createdAt": {"$gte": start, "$lt": end}})
    logger.info(f"Deleted {deleted} listing(s) created between {start.isoformat()} and {end.isoformat()}")
    return deleted
