"""EU Careers (EPSO) open vacancies connector.

The vacancy list is a paginated HTML table (``?page=N``). Detail pages rarely
carry the description inline: it is published as a vacancy notice in PDF or
Word format, so the connector downloads the notice and extracts its text.
Application forms linked from the same page become the apply link.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup, Tag

from ..documents import extract_document_text
from ..errors import DocumentExtractionError, FetchError
from ..extract import extract_emails
from ..models import ListingDraft, TableRowCandidate
from ..utils import clean_text, parse_datetime
from .base import ListingSource, Page

PLACEHOLDER_DESCRIPTION = "No detailed description available"
MIN_DOCUMENT_CHARS = 100
DEFAULT_COMPANY = "European Commission"

_APPLICATION_HINTS = ("application", "form")
_NOTICE_HINTS = ("vn.", "vacancy")


def _cell_text(row: Tag, selector: str) -> str:
    el = row.select_one(selector)
    return clean_text(el.get_text(" ")) if el else ""


def _cell_datetime(row: Tag, selector: str) -> Optional[str]:
    el = row.select_one(selector)
    return el.get("datetime") if el else None


class EUCareersSource(ListingSource):
    """Scrape the EPSO vacancy table and its vacancy notice documents."""

    name = "eu-institution"
    base_url = "https://eu-careers.europa.eu"
    start_path = "/en/job-opportunities/open-vacancies/ec_vacancies"
    max_candidates = 100
    page_delay_s = 2.0

    def parse_rows(self, html: str) -> List[TableRowCandidate]:
        soup = BeautifulSoup(html, "lxml")
        out: List[TableRowCandidate] = []
        for row in soup.select("table tbody tr"):
            title_el = row.select_one("td.views-field-title a")
            if title_el is None:
                continue
            out.append(
                TableRowCandidate(
                    title=clean_text(title_el.get_text(" ")),
                    link=(title_el.get("href") or "").strip(),
                    company=_cell_text(row, ".views-field-field-dgnew"),
                    location=_cell_text(row, ".views-field-field-epso-location"),
                    domain=_cell_text(row, ".views-field-field-epso-domain"),
                    grade=_cell_text(row, ".views-field-field-epso-grade"),
                    published=_cell_datetime(row, ".views-field-created time"),
                    deadline=_cell_datetime(row, ".views-field-field-epso-deadline time"),
                )
            )
        return out

    async def fetch_page(self, client: httpx.AsyncClient, token: int) -> Page:
        if token > self.first_page_token and self.page_delay_s:
            await self._sleep(self.page_delay_s)
        self.log.info(f"Scraping page {token + 1}...")
        resp = await self._get(client, self.base_url + self.start_path, params={"page": token})
        rows = self.parse_rows(resp.text)
        self.log.info(f"Found {len(rows)} vacancies on page {token + 1}")
        return Page(candidates=rows, next_token=token + 1 if rows else None)

    def classify_documents(self, html: str) -> Tuple[List[str], List[str]]:
        """Split attachment links into (vacancy notices, application forms)."""
        soup = BeautifulSoup(html, "lxml")
        notices: List[str] = []
        forms: List[str] = []
        for a in soup.select('a[href$=".docx"], a[href$=".pdf"]'):
            href = (a.get("href") or "").strip()
            if not href:
                continue
            url = self.absolute_url(href)
            text = a.get_text(" ").strip().lower()
            if any(h in text for h in _APPLICATION_HINTS):
                forms.append(url)
            elif any(h in text for h in _NOTICE_HINTS) or "eu_vacancies" in href:
                notices.append(url)
        return notices, forms

    async def _document_text(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            resp = await self._get(client, url)
            return extract_document_text(resp.content, url)
        except (FetchError, DocumentExtractionError) as exc:
            self.log.warning(f"Failed to extract document {url}: {exc}")
            return ""

    async def _describe(self, client: httpx.AsyncClient, notices: List[str]) -> str:
        best = ""
        for url in notices:
            self.log.info(f"Extracting description from {url}")
            text = await self._document_text(client, url)
            if len(text) > len(best):
                best = text
            if len(best) >= MIN_DOCUMENT_CHARS:
                break
        return best or PLACEHOLDER_DESCRIPTION

    @staticmethod
    def summary_description(candidate: TableRowCandidate) -> str:
        parts = [
            ("Domain", candidate.domain),
            ("Grade", candidate.grade),
            ("DG", candidate.company),
        ]
        return "\n".join(f"{label}: {value}" for label, value in parts if value)

    async def load_draft(self, client: httpx.AsyncClient, candidate: TableRowCandidate) -> Optional[ListingDraft]:
        if not candidate.title:
            return None
        job_url = self.absolute_url(candidate.link)
        resp = await self._get(client, job_url)
        notices, forms = self.classify_documents(resp.text)

        if notices:
            description = await self._describe(client, notices)
        else:
            description = self.summary_description(candidate) or PLACEHOLDER_DESCRIPTION
        if forms:
            self.log.info(f"Using application form {forms[0]}")

        dedupe = self.dedupe_key(candidate)
        return ListingDraft(
            title=candidate.title,
            company_name=candidate.company or DEFAULT_COMPANY,
            description=description,
            emails=extract_emails(description),
            apply_link=forms[0] if forms else job_url,
            relative_link=dedupe.value if dedupe else None,
            city=candidate.location,
            country="",
            tags=[candidate.domain] if candidate.domain else [],
            posted_at=parse_datetime(candidate.published),
            deadline=parse_datetime(candidate.deadline),
        )
