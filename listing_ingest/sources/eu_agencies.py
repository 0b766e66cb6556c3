"""EU agencies network vacancies (RSS feed).

The feed carries everything we need: each ``<item>`` has the apply link, an
HTML description, and ``<category domain="...">`` elements keyed by taxonomy.
No detail page is fetched.
"""

from __future__ import annotations

from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from ..dedupe import DedupeKey
from ..extract import ExtractedText, extract_markup
from ..models import FeedCategory, FeedItemCandidate, ListingDraft
from ..utils import clean_text, parse_datetime
from .base import ListingSource, Page

FEED_URL = "https://agencies-network.europa.eu/node/144/rss_en"

AGENCY_DOMAIN = "Agency"
CORPORATE_BODY_DOMAIN = "http://publications.europa.eu/resource/authority/corporate-body"
CONTRACT_DOMAIN = "Type of Contract"
VACANCY_TYPE_DOMAIN = "Vacancy type"
TAG_DOMAIN = "http://data.europa.eu/uxp/det"
LOCATION_DOMAIN = "City, Country"

DEFAULT_AGENCY = "EU Agency"
FALLBACK_NOTE = (
    "This job listing is from an official EU agency. We pull these directly from "
    "trusted sources so you never miss an opportunity, even the ones buried deep "
    "in government websites."
)


def _child_text(item, name: str) -> str:
    el = item.find(name)
    return el.get_text().strip() if el else ""


class EUAgenciesSource(ListingSource):
    name = "eu-agencies"
    base_url = "https://agencies-network.europa.eu"
    key_field = "applyLink"
    max_candidates = 500

    def parse_feed(self, xml: bytes) -> List[FeedItemCandidate]:
        soup = BeautifulSoup(xml, "xml")
        out: List[FeedItemCandidate] = []
        for item in soup.find_all("item"):
            out.append(
                FeedItemCandidate(
                    title=clean_text(_child_text(item, "title")),
                    link=_child_text(item, "link"),
                    description=_child_text(item, "description"),
                    pub_date=_child_text(item, "pubDate") or None,
                    categories=[
                        FeedCategory(domain=c.get("domain", ""), value=c.get_text().strip())
                        for c in item.find_all("category")
                    ],
                )
            )
        return out

    async def fetch_page(self, client: httpx.AsyncClient, token: int) -> Page:
        resp = await self._get(client, FEED_URL)
        items = self.parse_feed(resp.content)
        self.log.info(f"Found {len(items)} items in feed")
        return Page(candidates=items, next_token=None)

    def dedupe_key(self, candidate: FeedItemCandidate) -> Optional[DedupeKey]:
        link = candidate.link.strip()
        return DedupeKey("applyLink", link) if link else None

    async def load_draft(self, client: httpx.AsyncClient, candidate: FeedItemCandidate) -> Optional[ListingDraft]:
        if not candidate.title:
            return None
        if candidate.description.strip():
            extracted = extract_markup(candidate.description)
        else:
            extracted = ExtractedText(description=FALLBACK_NOTE)

        return ListingDraft(
            title=candidate.title,
            company_name=candidate.category(AGENCY_DOMAIN) or DEFAULT_AGENCY,
            description=extracted.description or FALLBACK_NOTE,
            emails=extracted.emails,
            apply_link=candidate.link.strip(),
            location=candidate.category(LOCATION_DOMAIN),
            tags=candidate.categories_for(TAG_DOMAIN),
            contract_type=candidate.category(CONTRACT_DOMAIN),
            source_agency=candidate.category(CORPORATE_BODY_DOMAIN),
            vacancy_type=candidate.category(VACANCY_TYPE_DOMAIN),
            posted_at=parse_datetime(candidate.pub_date),
        )
