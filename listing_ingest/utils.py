"""Utility helpers shared across the engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from dateutil import parser as date_parser


def new_listing_id() -> str:
    """Create an opaque identifier for a freshly ingested listing."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uniq_preserve_order(items: Iterable[str]) -> List[str]:
    """Deduplicate while preserving first-seen order."""
    seen = set()
    out: List[str] = []
    for it in items:
        if not it:
            continue
        key = it.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out


def clean_text(value: Optional[str]) -> str:
    """Collapse inner whitespace and trim; None becomes an empty string."""
    return " ".join((value or "").split())


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 or RFC-822 style timestamps into aware UTC datetimes.

    Naive values are assumed to be UTC. Unparseable input yields None.
    """
    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
