"""EuroBrussels connector.

Listings are nested under companies: the homepage shows premium employer
logos linking to ``/jobs_at/<company>`` pages, each of which lists job cards.
The page token is the index of the company page to scrape next.

Apply buttons point at an internal click tracker that redirects to the
employer's site; we read the redirect target without following it.
"""

from __future__ import annotations

from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from ..errors import FetchError
from ..extract import extract_markup
from ..models import CompanyCardCandidate, ListingDraft
from ..net import resolve_redirect
from ..utils import clean_text, uniq_preserve_order
from .base import ListingSource, Page

COMPANY_PREFIX = "/jobs_at/"
TRACK_CLICK_PREFIX = "/job/track_click"

BOILERPLATE = (
    "found this job on eurobrussels",
    "mention eurobrussels",
)


class EurobrusselsSource(ListingSource):
    name = "eurobrussels"
    base_url = "https://www.eurobrussels.com"
    max_candidates = 100

    def __init__(self, *args, max_companies: int = 100, jobs_per_company: int = 1, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_companies = max_companies
        self.jobs_per_company = jobs_per_company
        self._companies: List[str] = []

    def parse_company_paths(self, html: str) -> List[str]:
        soup = BeautifulSoup(html, "lxml")
        paths = [
            (a.get("href") or "").strip()
            for a in soup.select("a.animatedPremiumJobLogoWrapper")
        ]
        paths = [p for p in paths if p.startswith(COMPANY_PREFIX)]
        return uniq_preserve_order(paths)[: self.max_companies]

    def parse_cards(self, html: str, company_path: str) -> List[CompanyCardCandidate]:
        soup = BeautifulSoup(html, "lxml")
        out: List[CompanyCardCandidate] = []
        for box in soup.select(".ps-3"):
            title_el = box.select_one("h3 a")
            if title_el is None or not title_el.get("href"):
                continue
            company_el = box.select_one(".companyName")
            location_el = box.select_one(".location")
            out.append(
                CompanyCardCandidate(
                    title=clean_text(title_el.get_text(" ")),
                    link=title_el["href"].strip(),
                    company=clean_text(company_el.get_text(" ")) if company_el else "",
                    location=clean_text(location_el.get_text(" ")) if location_el else "",
                    company_path=company_path,
                )
            )
            if len(out) >= self.jobs_per_company:
                break
        return out

    async def fetch_page(self, client: httpx.AsyncClient, token: int) -> Page:
        if token == self.first_page_token:
            resp = await self._get(client, self.base_url + "/")
            self._companies = self.parse_company_paths(resp.text)
            self.log.info(f"Found {len(self._companies)} company pages")
        if token >= len(self._companies):
            return Page(candidates=[], next_token=None)

        path = self._companies[token]
        next_token = token + 1 if token + 1 < len(self._companies) else None
        try:
            resp = await self._get(client, self.absolute_url(path))
        except FetchError as e:
            # One broken company page should not end the run.
            self.log.warning(f"Skipping company page {path}: {e}")
            return Page(candidates=[], next_token=next_token)
        return Page(candidates=self.parse_cards(resp.text, path), next_token=next_token)

    async def _external_apply_link(self, client: httpx.AsyncClient, soup: BeautifulSoup) -> str:
        button = soup.select_one("a.btn.callToAction")
        href = (button.get("href") or "").strip() if button else ""
        if href.startswith(TRACK_CLICK_PREFIX):
            return await resolve_redirect(client, self.absolute_url(href)) or ""
        if href.startswith("http"):
            return href
        return ""

    async def load_draft(self, client: httpx.AsyncClient, candidate: CompanyCardCandidate) -> Optional[ListingDraft]:
        if not candidate.title:
            return None
        job_url = self.absolute_url(candidate.link)
        resp = await self._get(client, job_url)
        soup = BeautifulSoup(resp.text, "lxml")

        apply_link = await self._external_apply_link(client, soup)

        for el in soup.select(".apply.fw-bold.mt-4.mb-3"):
            el.decompose()
        for share in soup.select(".shareJob"):
            row = share.find_parent(class_="row")
            (row or share).decompose()

        body = soup.select_one(".jobDisplay")
        extracted = extract_markup(body.decode_contents() if body else "", BOILERPLATE)

        dedupe = self.dedupe_key(candidate)
        return ListingDraft(
            title=candidate.title,
            company_name=candidate.company,
            description=extracted.description,
            emails=extracted.emails,
            apply_link=apply_link or job_url,
            relative_link=dedupe.value if dedupe else None,
            location=candidate.location,
        )
