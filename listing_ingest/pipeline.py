"""Run orchestration: pages -> dedupe -> detail -> normalize -> save -> notify.

One ``IngestPipeline`` can run several sources in sequence. Each run gets a
fresh ``DedupeIndex`` seeded from the store and, when a dispatch queue is
configured, its own ``ContactNotifier`` so a contact is emailed at most once
per run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from .dedupe import DedupeIndex, DedupeKey
from .dispatch import DispatchQueue
from .errors import DuplicateListingError, FetchError, StoreError
from .log import source_logger
from .models import DEFAULT_LISTING_TTL, ListingDraft, ListingRecord, RawCandidate
from .normalize import (
    estimate_salary,
    infer_contract_type,
    infer_employment_type,
    infer_remote_status,
    infer_seniority,
    split_location,
)
from .notify import DEFAULT_SUBJECT, ContactNotifier
from .sources.base import ListingSource
from .store import ListingStore
from .utils import new_listing_id, utcnow

PLACEHOLDER_DESCRIPTION = "(No description available)"


@dataclass
class RunStats:
    source: str
    pages: int = 0
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    invalid: int = 0
    errors: int = 0
    emails_found: int = 0
    emails_sent: int = 0
    aborted: bool = False
    abort_reason: str = ""

    @property
    def ok(self) -> bool:
        return not self.aborted

    def summary(self) -> str:
        text = (
            f"{self.source}: processed={self.processed} saved={self.saved} "
            f"skipped={self.skipped} invalid={self.invalid} errors={self.errors} "
            f"emails_found={self.emails_found} emails_sent={self.emails_sent}"
        )
        if self.aborted:
            text += f" ABORTED ({self.abort_reason})"
        return text


def build_record(draft: ListingDraft, *, source: str, listing_id: str, now: datetime) -> ListingRecord:
    """Normalize a draft into a ``ListingRecord``.

    Pure: the same draft, id and ``now`` always give the same record.
    Classification runs on title + description. ``createdAt`` is the posting
    date when the source gives one; ``expiresOn`` is the deadline when it lies
    after ``createdAt``, otherwise 30 days from the later of now/createdAt.

    Raises:
        ValidationError: The draft cannot form a valid record.
    """
    title = draft.title.strip()
    description = draft.description.strip() or PLACEHOLDER_DESCRIPTION
    text = f"{title}\n{description}"

    if draft.city is not None or draft.country is not None:
        city, state, country = (draft.city or "").strip(), "", (draft.country or "").strip()
    else:
        city, state, country = split_location(draft.location)

    created_at = draft.posted_at or now
    if draft.deadline is not None and draft.deadline > created_at:
        expires_on = draft.deadline
    else:
        expires_on = max(now, created_at) + DEFAULT_LISTING_TTL

    return ListingRecord(
        id=listing_id,
        title=title,
        description=description,
        company_name=draft.company_name.strip(),
        tags=draft.tags,
        seniority=infer_seniority(title),
        contract_type=infer_contract_type(draft.contract_type, text),
        type=infer_employment_type(text),
        remote=infer_remote_status(text),
        city=city,
        state=state,
        country=country,
        salary=estimate_salary(text),
        apply_link=draft.apply_link.strip(),
        relative_link=draft.relative_link,
        contact_email=draft.emails[0] if draft.emails else None,
        source_agency=draft.source_agency,
        vacancy_type=draft.vacancy_type,
        source=source,
        created_at=created_at,
        updated_at=now,
        expires_on=expires_on,
    )


class IngestPipeline:
    """Runs source connectors against a store.

    Usage:
        pipeline = IngestPipeline(store, client, queue=queue)
        stats = await pipeline.run(EuractivSource())
    """

    def __init__(
        self,
        store: ListingStore,
        client: httpx.AsyncClient,
        *,
        queue: Optional[DispatchQueue] = None,
        notification_subject: str = DEFAULT_SUBJECT,
        now: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_listing_id,
    ) -> None:
        self.store = store
        self.client = client
        self.queue = queue
        self.notification_subject = notification_subject
        self._now = now
        self._id_factory = id_factory

    async def run(self, source: ListingSource) -> RunStats:
        stats = RunStats(source=source.name)
        log = source_logger(__name__, source.name)
        index = DedupeIndex()
        try:
            await index.seed(self.store)
        except StoreError as e:
            stats.aborted, stats.abort_reason = True, f"could not load existing listings: {e}"
            log.error(stats.abort_reason)
            return stats

        notifier = ContactNotifier(self.queue, self.notification_subject) if self.queue else None
        token = source.first_page_token
        while token is not None and stats.processed < source.max_candidates:
            try:
                page = await source.fetch_page(self.client, token)
            except Exception as e:
                if not isinstance(e, FetchError):
                    log.exception(f"Unexpected error reading page {token!r}")
                if stats.pages == 0:
                    stats.aborted, stats.abort_reason = True, str(e) or type(e).__name__
                    log.error(f"Run aborted, first page failed: {stats.abort_reason}")
                else:
                    log.warning(f"Stopping after {stats.pages} page(s): {e}")
                break
            stats.pages += 1
            for candidate in page.candidates:
                if stats.processed >= source.max_candidates:
                    break
                await self._process(source, candidate, index, notifier, stats, log)
            token = page.next_token

        if notifier is not None:
            results = await notifier.wait()
            stats.emails_sent = sum(1 for r in results if r.ok)
        log.info(stats.summary())
        return stats

    async def _already_stored(self, key: DedupeKey) -> bool:
        # applyLink has no unique index behind it; ask the store directly.
        if key.field != "applyLink":
            return False
        return await self.store.find_one(key.as_filter()) is not None

    async def _process(
        self,
        source: ListingSource,
        candidate: RawCandidate,
        index: DedupeIndex,
        notifier: Optional[ContactNotifier],
        stats: RunStats,
        log: logging.LoggerAdapter,
    ) -> None:
        stats.processed += 1
        key = source.dedupe_key(candidate)
        if key is None:
            stats.invalid += 1
            log.warning(f"Skipping candidate without a usable link: {getattr(candidate, 'title', '')!r}")
            return
        if index.is_duplicate(key):
            stats.skipped += 1
            log.debug(f"Already stored: {key}")
            return
        try:
            if await self._already_stored(key):
                index.register(key)
                stats.skipped += 1
                log.debug(f"Already stored: {key}")
                return
        except StoreError as e:
            stats.errors += 1
            log.error(f"Lookup failed for {key}: {e}")
            return

        try:
            draft = await source.load_draft(self.client, candidate)
        except FetchError as e:
            stats.errors += 1
            log.warning(f"Detail fetch failed for {key}: {e}")
            return
        except Exception:
            stats.errors += 1
            log.exception(f"Could not read detail for {key}")
            return
        if draft is None:
            stats.invalid += 1
            log.warning(f"Skipping malformed candidate {key}")
            return

        try:
            record = build_record(draft, source=source.name, listing_id=self._id_factory(), now=self._now())
        except ValidationError as e:
            stats.invalid += 1
            log.warning(f"Invalid listing {key}: {e.error_count()} validation error(s)")
            return

        try:
            await self.store.save(record)
        except DuplicateListingError as e:
            index.register(key)
            stats.skipped += 1
            log.info(f"Store already has {key}: {e}")
            return
        except StoreError as e:
            stats.errors += 1
            log.error(f"Failed to save {key}: {e}")
            return

        index.register(key)
        if record.relative_link:
            index.register(DedupeKey("relativeLink", record.relative_link))
        if record.apply_link:
            index.register(DedupeKey("applyLink", record.apply_link))
        stats.saved += 1
        stats.emails_found += len(draft.emails)
        log.info(f"Saved: {record.title} @ {record.company_name or 'Unknown Company'}")
        if notifier is not None and draft.emails:
            notifier.notify(record, draft.emails)
