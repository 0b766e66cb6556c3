from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
import pytest

from listing_ingest.dedupe import DedupeKey
from listing_ingest.dispatch import DeliveryResult, DispatchQueue
from listing_ingest.errors import FetchError, StoreError
from listing_ingest.models import ListingDraft, TableRowCandidate
from listing_ingest.pipeline import PLACEHOLDER_DESCRIPTION, IngestPipeline, build_record
from listing_ingest.sources.base import ListingSource, Page
from listing_ingest.sources.eu_agencies import EUAgenciesSource
from listing_ingest.sources.jobsin import JobsinSource
from listing_ingest.store import InMemoryListingStore

FEED_ONE_ITEM = b"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0"><channel>
<item>
  <title>Legal Officer</title>
  <link>https://www.efsa.europa.eu/careers/legal-officer</link>
  <description>&lt;p&gt;Contact: hr@efsa.europa.eu&lt;/p&gt;</description>
  <category domain="Agency">European Food Safety Authority</category>
  <category domain="City, Country">Parma, Italy</category>
</item>
</channel></rss>
"""


class StaticSource(ListingSource):
    """Serves pre-built pages; drafts are derived from the row itself."""

    name = "static"
    base_url = "https://static.example"

    def __init__(self, pages: List[List[TableRowCandidate]], fail_at: Optional[int] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.pages = pages
        self.fail_at = fail_at
        self.loaded: List[str] = []

    async def fetch_page(self, client, token: int) -> Page:
        if token == self.fail_at:
            raise FetchError(f"{self.base_url}/list?page={token}", 4)
        next_token = token + 1 if token + 1 < len(self.pages) or self.fail_at == token + 1 else None
        return Page(candidates=self.pages[token], next_token=next_token)

    async def load_draft(self, client, candidate: TableRowCandidate) -> Optional[ListingDraft]:
        self.loaded.append(candidate.link)
        if candidate.title == "broken":
            raise FetchError(self.absolute_url(candidate.link), 4)
        if candidate.title == "empty":
            return None
        key = self.dedupe_key(candidate)
        return ListingDraft(
            title=candidate.title,
            company_name=candidate.company,
            description=candidate.category,
            emails=[e for e in candidate.domain.split() if e],
            apply_link=self.absolute_url(candidate.link),
            relative_link=key.value if key else None,
            location=candidate.location,
        )


def _row(link: str, title: str = "Officer", emails: str = "", **kw) -> TableRowCandidate:
    return TableRowCandidate(title=title, link=link, company="Acme", domain=emails, **kw)


class RecordingSender:
    def __init__(self) -> None:
        self.sent = []

    async def send(self, to, subject, html, tags):
        self.sent.append(to)
        return DeliveryResult.success(id=f"m{len(self.sent)}")


class FailingStore(InMemoryListingStore):
    async def save(self, record):
        raise StoreError("disk full")


def _ids():
    counter = iter(range(1, 1000))
    return lambda: f"listing{next(counter):06d}"


@pytest.fixture
def pipeline_factory(store, fixed_now):
    def _make(client=None, target_store=None, queue=None):
        return IngestPipeline(
            target_store if target_store is not None else store,
            client,
            queue=queue,
            now=lambda: fixed_now,
            id_factory=_ids(),
        )

    return _make


# --- build_record ---------------------------------------------------------------


def test_build_record_normalizes_draft(fixed_now):
    draft = ListingDraft(
        title="Senior Policy Advisor",
        company_name=" Acme ",
        description="Hybrid role. Part-time. Salary €4,000 per month. Permanent contract.",
        emails=["hr@acme.eu", "jobs@acme.eu"],
        apply_link="https://acme.eu/apply",
        relative_link="/job/senior-policy-advisor",
        location="Brussels, Belgium",
        tags=["Policy", "policy"],
    )
    record = build_record(draft, source="euractiv", listing_id="abcdef123456", now=fixed_now)
    assert record.id == "abcdef123456"
    assert record.slug == "senior-policy-advisor-at-acme-123456"
    assert record.company_name == "Acme"
    assert record.seniority == "senior"
    assert record.remote == "partial"
    assert record.type == "part-time"
    assert record.contract_type == "permanent"
    assert record.salary == 4000.0
    assert (record.city, record.state, record.country) == ("Brussels", "", "Belgium")
    assert record.contact_email == "hr@acme.eu"
    assert record.tags == ["Policy"]
    assert record.created_at == fixed_now
    assert record.expires_on == fixed_now + timedelta(days=30)


def test_build_record_is_deterministic(fixed_now):
    draft = ListingDraft(title="Officer", company_name="Acme", description="x", location="Paris")
    a = build_record(draft, source="s", listing_id="id0001", now=fixed_now)
    b = build_record(draft, source="s", listing_id="id0001", now=fixed_now)
    assert a == b


def test_build_record_dates_and_placeholders(fixed_now):
    posted = fixed_now - timedelta(days=60)
    past_deadline = fixed_now - timedelta(days=70)
    draft = ListingDraft(
        title="Officer",
        description="   ",
        city="Brussels (Belgium)",
        country="",
        posted_at=posted,
        deadline=past_deadline,
    )
    record = build_record(draft, source="s", listing_id="id0001", now=fixed_now)
    assert record.description == PLACEHOLDER_DESCRIPTION
    assert record.city == "Brussels (Belgium)"
    assert record.country == ""
    assert record.created_at == posted
    # deadline before the posting date is ignored
    assert record.expires_on == fixed_now + timedelta(days=30)
    assert record.contact_email is None

    deadline = fixed_now + timedelta(days=10)
    record = build_record(draft.model_copy(update={"deadline": deadline}), source="s", listing_id="id0001", now=fixed_now)
    assert record.expires_on == deadline


# --- runs -----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rss_item_already_stored_is_skipped(mock_client, no_sleep, fixed_now):
    store = InMemoryListingStore(
        [{"_id": "existing", "applyLink": "https://www.efsa.europa.eu/careers/legal-officer", "source": "eu-agencies"}]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=FEED_ONE_ITEM)

    async with mock_client(handler) as client:
        pipeline = IngestPipeline(store, client, now=lambda: fixed_now)
        stats = await pipeline.run(EUAgenciesSource(sleep=no_sleep))

    assert stats.saved == 0
    assert stats.skipped == 1
    assert stats.ok
    assert len(store.documents) == 1


@pytest.mark.asyncio
async def test_rss_item_saved_with_agency_fields(mock_client, no_sleep, fixed_now, store):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=FEED_ONE_ITEM)

    async with mock_client(handler) as client:
        stats = await IngestPipeline(store, client, now=lambda: fixed_now).run(EUAgenciesSource(sleep=no_sleep))

    assert stats.saved == 1
    (doc,) = store.documents.values()
    assert doc["companyName"] == "European Food Safety Authority"
    assert doc["city"] == "Parma"
    assert doc["country"] == "Italy"
    assert doc["applyLink"] == "https://www.efsa.europa.eu/careers/legal-officer"
    assert doc["contactEmail"] == "hr@efsa.europa.eu"
    assert doc["source"] == "eu-agencies"
    assert "relativeLink" not in doc


@pytest.mark.asyncio
async def test_duplicates_within_one_run_are_saved_once(pipeline_factory, store):
    source = StaticSource([[_row("/job/1"), _row("/job/1/"), _row("/job/2", title="Analyst")]])
    stats = await pipeline_factory().run(source)
    assert stats.processed == 3
    assert stats.saved == 2
    assert stats.skipped == 1
    assert sorted(d["relativeLink"] for d in store.documents.values()) == ["/job/1", "/job/2"]
    # detail is never loaded for a known key
    assert source.loaded == ["/job/1", "/job/2"]


@pytest.mark.asyncio
async def test_existing_listing_is_not_reloaded(pipeline_factory, store):
    store.documents["old"] = {"_id": "old", "relativeLink": "/job/1"}
    source = StaticSource([[_row("https://static.example/job/1?ref=home")]])
    stats = await pipeline_factory().run(source)
    assert (stats.saved, stats.skipped) == (0, 1)
    assert source.loaded == []


@pytest.mark.asyncio
async def test_store_uniqueness_violation_counts_as_duplicate(store, fixed_now):
    # a constant id makes the second save collide on _id and slug
    pipeline = IngestPipeline(store, None, now=lambda: fixed_now, id_factory=lambda: "same-id-000001")
    stats = await pipeline.run(StaticSource([[_row("/job/1"), _row("/job/2")]]))
    assert stats.saved == 1
    assert stats.skipped == 1
    assert stats.errors == 0


@pytest.mark.asyncio
async def test_invalid_and_failing_candidates_are_counted(pipeline_factory):
    source = StaticSource(
        [[_row(""), _row("/job/broken", title="broken"), _row("/job/empty", title="empty"), _row("/job/ok")]]
    )
    stats = await pipeline_factory().run(source)
    assert stats.invalid == 2
    assert stats.errors == 1
    assert stats.saved == 1


@pytest.mark.asyncio
async def test_store_errors_are_counted(pipeline_factory):
    stats = await pipeline_factory(target_store=FailingStore()).run(StaticSource([[_row("/job/1")]]))
    assert stats.errors == 1
    assert stats.saved == 0
    assert stats.ok


@pytest.mark.asyncio
async def test_first_page_failure_aborts(pipeline_factory):
    stats = await pipeline_factory().run(StaticSource([[]], fail_at=0))
    assert stats.aborted
    assert not stats.ok
    assert "page=0" in stats.abort_reason
    assert "ABORTED" in stats.summary()


@pytest.mark.asyncio
async def test_later_page_failure_keeps_partial_results(pipeline_factory, store):
    stats = await pipeline_factory().run(StaticSource([[_row("/job/1")]], fail_at=1))
    assert stats.ok
    assert stats.pages == 1
    assert stats.saved == 1


@pytest.mark.asyncio
async def test_candidate_cap_stops_paging(pipeline_factory):
    pages = [[_row(f"/job/{p}-{i}") for i in range(3)] for p in range(5)]
    source = StaticSource(pages, max_candidates=4)
    stats = await pipeline_factory().run(source)
    assert stats.processed == 4
    assert stats.pages == 2


@pytest.mark.asyncio
async def test_contacts_notified_once_per_run(pipeline_factory, fake_clock):
    sender = RecordingSender()
    queue = DispatchQueue(sender, clock=fake_clock)
    source = StaticSource(
        [[
            _row("/job/1", emails="hr@acme.eu"),
            _row("/job/2", title="Analyst", emails="HR@acme.eu jobs@acme.eu"),
            _row("/job/3", title="Clerk"),
        ]]
    )
    stats = await pipeline_factory(queue=queue).run(source)
    assert stats.saved == 3
    assert stats.emails_found == 3
    assert stats.emails_sent == 2
    assert sender.sent == ["hr@acme.eu", "jobs@acme.eu"]


@pytest.mark.asyncio
async def test_no_notifications_without_queue(pipeline_factory):
    stats = await pipeline_factory().run(StaticSource([[_row("/job/1", emails="hr@acme.eu")]]))
    assert stats.emails_found == 1
    assert stats.emails_sent == 0


def test_dedupe_key_default_uses_relative_link():
    source = StaticSource([])
    assert source.dedupe_key(_row("https://static.example/job/9/")) == DedupeKey("relativeLink", "/job/9")
    assert source.dedupe_key(_row("")) is None


def _story(uuid: str, url: str) -> dict:
    return {"uuid": uuid, "name": f"Acme - Role {uuid}", "content": {"link": {"url": url}}}


@pytest.mark.asyncio
async def test_unreadable_detail_payload_skips_only_that_candidate(mock_client, no_sleep, store, fixed_now):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/cdn/stories":
            stories = [_story("u1", "https://acme.org/jobs/1"), _story("u2", "https://acme.org/jobs/2")]
            return httpx.Response(200, json={"stories": stories})
        if request.url.path == "/v1/cdn/stories/u1":
            return httpx.Response(200, text="<html>maintenance</html>")
        if request.url.path == "/v1/cdn/stories/u2":
            return httpx.Response(200, json={"story": _story("u2", "https://acme.org/jobs/2")})
        return httpx.Response(404)

    async with mock_client(handler) as client:
        stats = await IngestPipeline(store, client, now=lambda: fixed_now).run(JobsinSource("tok", sleep=no_sleep))

    assert stats.processed == 2
    assert stats.errors == 1
    assert stats.saved == 1
    assert stats.ok
    (doc,) = store.documents.values()
    assert doc["applyLink"] == "https://acme.org/jobs/2"


@pytest.mark.asyncio
async def test_unreadable_first_page_aborts_run(mock_client, no_sleep, store, fixed_now):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with mock_client(handler) as client:
        stats = await IngestPipeline(store, client, now=lambda: fixed_now).run(JobsinSource("tok", sleep=no_sleep))

    assert stats.aborted
    assert stats.abort_reason
    assert stats.saved == 0


class BrokenPageSource(StaticSource):
    async def fetch_page(self, client, token: int) -> Page:
        if token == 1:
            raise AttributeError("'list' object has no attribute 'get'")
        return Page(candidates=self.pages[0], next_token=1)


@pytest.mark.asyncio
async def test_unexpected_error_on_later_page_keeps_partial_results(pipeline_factory):
    stats = await pipeline_factory().run(BrokenPageSource([[_row("/job/1")]]))
    assert stats.ok
    assert stats.pages == 1
    assert stats.saved == 1
