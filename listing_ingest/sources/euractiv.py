"""Euractiv Jobs connector.

The homepage lists current vacancies in a single table; each row links to a
detail page whose body field holds the description.
"""

from __future__ import annotations

from typing import List, Optional

import httpx
from bs4 import BeautifulSoup, Tag

from ..extract import extract_markup
from ..models import ListingDraft, TableRowCandidate
from ..utils import clean_text
from .base import ListingSource, Page

# Paragraphs whose text mentions any of these are the board's attribution footer.
BOILERPLATE = (
    "you found this position advertised",
    "mention that you found this job",
    "euractiv",
)

# Pasted Word fragments carry this font class in their markup.
MARKUP_MARKERS = ("arial_msfontservice",)


def _link_text(row: Tag, selector: str) -> str:
    el = row.select_one(selector)
    return clean_text(el.get_text(" ")) if el else ""


class EuractivSource(ListingSource):
    name = "euractiv"
    base_url = "https://jobs.euractiv.com"
    max_candidates = 100

    def parse_rows(self, html: str) -> List[TableRowCandidate]:
        soup = BeautifulSoup(html, "lxml")
        out: List[TableRowCandidate] = []
        for row in soup.select("tbody tr"):
            title_el = row.select_one(".views-field-title-1 a")
            if title_el is None or not title_el.get("href"):
                continue
            out.append(
                TableRowCandidate(
                    title=clean_text(title_el.get_text(" ")),
                    link=title_el["href"].strip(),
                    company=_link_text(row, ".views-field-field-ea-job-company-nref a"),
                    location=_link_text(row, ".views-field-field-ea-shared-location-tref a"),
                    category=_link_text(row, ".views-field-field-ea-shared-category-tref a"),
                )
            )
        return out

    async def fetch_page(self, client: httpx.AsyncClient, token: int) -> Page:
        resp = await self._get(client, self.base_url + "/")
        rows = self.parse_rows(resp.text)
        self.log.info(f"Found {len(rows)} job rows")
        # Everything is on the homepage.
        return Page(candidates=rows, next_token=None)

    async def load_draft(self, client: httpx.AsyncClient, candidate: TableRowCandidate) -> Optional[ListingDraft]:
        if not candidate.title:
            return None
        job_url = self.absolute_url(candidate.link)
        resp = await self._get(client, job_url)
        soup = BeautifulSoup(resp.text, "lxml")
        body = soup.select_one(".field-name-body .field-item")
        extracted = extract_markup(body.decode_contents() if body else "", BOILERPLATE, MARKUP_MARKERS)

        dedupe = self.dedupe_key(candidate)
        return ListingDraft(
            title=candidate.title,
            company_name=candidate.company or "Unknown Company",
            description=extracted.description,
            emails=extracted.emails,
            apply_link=job_url,
            relative_link=dedupe.value if dedupe else None,
            location=candidate.location,
            tags=[candidate.category] if candidate.category else [],
        )
