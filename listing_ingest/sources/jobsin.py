"""Jobsin connector (Storyblok CDN API).

Docs: https://www.storyblok.com/docs/api/content-delivery/v2

Job stories live under ``jobs/``. The list endpoint is requested without the
heavy rich-text fields; full content is loaded per story (by uuid) only for
stories that are not stored yet.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from ..dedupe import DedupeKey
from ..extract import extract
from ..models import ListingDraft, StoryCandidate, StoryContent
from ..utils import clean_text, parse_datetime
from .base import ListingSource, Page

HEAVY_FIELDS = "description,body"
UNKNOWN_COMPANY = "Unknown Company"


def split_story_name(name: str) -> Tuple[str, str]:
    """``"Acme - Policy Officer"`` -> ``("Acme", "Policy Officer")``; no separator -> ``("", name)``."""
    if " - " not in name:
        return "", name.strip()
    company, title = name.split(" - ", 1)
    return company.strip(), title.strip()


def resolve_company(content: StoryContent, story_name: str) -> str:
    for value in (content.company, content.org, content.meta.company, content.author):
        if value and value.strip():
            return value.strip()
    company, _ = split_story_name(story_name)
    return company or UNKNOWN_COMPANY


class JobsinSource(ListingSource):
    name = "jobsin"
    base_url = "https://api.storyblok.com/v1/cdn"
    key_field = "applyLink"
    max_candidates = 100
    first_page_token = 1

    def __init__(self, token: str, *args, per_page: int = 100, **kwargs) -> None:
        if not token:
            raise ValueError("A Storyblok token is required for the jobsin source")
        super().__init__(*args, **kwargs)
        self.token = token
        self.per_page = per_page

    def _params(self, **extra: Any) -> Dict[str, Any]:
        return {"token": self.token, **extra}

    async def fetch_page(self, client: httpx.AsyncClient, token: int) -> Page:
        resp = await self._get(
            client,
            self.base_url + "/stories",
            params=self._params(
                starts_with="jobs/",
                per_page=self.per_page,
                page=token,
                excluding_fields=HEAVY_FIELDS,
            ),
        )
        stories = resp.json().get("stories") or []
        candidates = [StoryCandidate.model_validate(s) for s in stories if s.get("uuid")]
        self.log.info(f"Fetched {len(stories)} stories from page {token}")
        # A short page is the last one.
        next_token = token + 1 if len(stories) >= self.per_page else None
        return Page(candidates=candidates, next_token=next_token)

    def dedupe_key(self, candidate: StoryCandidate) -> Optional[DedupeKey]:
        link = candidate.content.resolved_apply_link
        return DedupeKey("applyLink", link) if link else None

    async def load_draft(self, client: httpx.AsyncClient, candidate: StoryCandidate) -> Optional[ListingDraft]:
        resp = await self._get(
            client, f"{self.base_url}/stories/{candidate.uuid}", params=self._params(find_by="uuid")
        )
        story = resp.json().get("story") or {}
        content = StoryContent.model_validate(story.get("content") or {})

        apply_link = content.resolved_apply_link or candidate.content.resolved_apply_link
        if not apply_link:
            self.log.warning(f"Story {candidate.uuid} has no apply link; skipping")
            return None

        payload = content.description if content.description is not None else content.body
        extracted = extract(payload)

        name = clean_text(story.get("name") or candidate.name)
        _, name_title = split_story_name(name)
        return ListingDraft(
            title=content.title or name_title or name,
            company_name=resolve_company(content, name),
            description=extracted.description,
            emails=extracted.emails,
            apply_link=apply_link,
            location=content.location,
            tags=content.tags,
            contract_type=content.contract,
            posted_at=parse_datetime(story.get("created_at") or candidate.created_at),
            deadline=parse_datetime(content.deadline),
        )
