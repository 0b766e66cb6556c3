"""Data models for the ingestion pipeline.

The key idea: the job board owns a *stable* normalized schema regardless of the
upstream source. Each source produces one raw candidate shape (a member of the
``RawCandidate`` tagged union); after deduplication the adapter turns it into a
``ListingDraft`` and ``pipeline.build_record`` turns the draft into the
persisted ``ListingRecord``.

Records are stored with camelCase keys (``companyName``, ``applyLink``...), so
the record model uses a camelCase alias generator while Python code keeps
snake_case attributes.

This file uses Pydantic v2.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .normalize import slugify_listing
from .utils import new_listing_id, uniq_preserve_order, utcnow

Seniority = Literal["intern", "junior", "mid-level", "senior"]
RemoteStatus = Literal["yes", "partial", "no"]
EmploymentType = Literal["full-time", "part-time"]
Plan = Literal["pending", "basic", "pro", "recruiter", "unlimited"]
KeyField = Literal["relativeLink", "applyLink"]

DEFAULT_LISTING_TTL = timedelta(days=30)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ListingRecord(_CamelModel):
    """A normalized job listing as persisted in the document store.

    ``slug`` is derived from (title, company_name, id) when the record is
    created; use ``rename`` to change title or company so the slug follows.
    """

    id: str = Field(default_factory=new_listing_id)
    slug: str = ""

    title: str
    description: str
    company_name: str = ""
    tags: List[str] = Field(default_factory=list)

    seniority: Seniority = "mid-level"
    contract_type: str = ""
    type: EmploymentType = "full-time"
    remote: RemoteStatus = "no"

    city: str = ""
    state: str = ""
    country: str = ""

    salary: float = 0
    plan: Plan = "basic"

    apply_link: str = ""
    relative_link: Optional[str] = None
    contact_email: Optional[str] = None

    source_agency: str = ""
    vacancy_type: str = ""

    source: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_on: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: List[str]) -> List[str]:
        return uniq_preserve_order(t.strip() for t in value if t and t.strip())

    @field_validator("created_at", "updated_at", "expires_on")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("relative_link", "contact_email")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def _derive_defaults(self) -> "ListingRecord":
        if not self.slug:
            self.slug = slugify_listing(self.title, self.company_name, self.id)
        if self.expires_on is None:
            self.expires_on = self.created_at + DEFAULT_LISTING_TTL
        if self.expires_on <= self.created_at:
            raise ValueError("expires_on must be after created_at")
        return self

    def rename(self, title: Optional[str] = None, company_name: Optional[str] = None) -> None:
        """Change title and/or company and regenerate the slug."""
        if title is not None:
            self.title = title
        if company_name is not None:
            self.company_name = company_name
        self.slug = slugify_listing(self.title, self.company_name, self.id)
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the store: camelCase keys, ``_id`` instead of ``id``.

        An empty ``relativeLink`` is omitted entirely so the sparse unique
        index ignores the document.
        """
        doc = self.model_dump(by_alias=True, exclude={"id"})
        doc["_id"] = self.id
        if doc.get("relativeLink") is None:
            doc.pop("relativeLink", None)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ListingRecord":
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


# --- raw candidates -------------------------------------------------------


class TableRowCandidate(BaseModel):
    """One row of a tabular listing page."""

    kind: Literal["table_row"] = "table_row"
    title: str
    link: str
    company: str = ""
    location: str = ""
    category: str = ""
    domain: str = ""
    grade: str = ""
    published: Optional[str] = None
    deadline: Optional[str] = None


class CompanyCardCandidate(BaseModel):
    """A listing card found on a company's page."""

    kind: Literal["company_card"] = "company_card"
    title: str
    link: str
    company: str = ""
    location: str = ""
    company_path: str = ""


class StoryLink(BaseModel):
    url: Optional[str] = ""
    cached_url: Optional[str] = ""

    @property
    def resolved(self) -> str:
        return (self.url or self.cached_url or "").strip()


class StoryMeta(BaseModel):
    company: str = ""


class StoryContent(BaseModel):
    """The ``content`` object of a CMS job story.

    Heavy fields (``description``/``body``) are only present on the detail
    response.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    company: str = ""
    org: str = ""
    meta: StoryMeta = Field(default_factory=StoryMeta)
    author: str = ""
    link: Optional[StoryLink] = None
    apply_link: Optional[StoryLink] = None
    contract: str = ""
    location: str = ""
    deadline: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    # Rich-text document (dict) or, on older stories, a markup string.
    description: Any = None
    body: Any = None

    @field_validator("company", "org", "author", "title", "contract", "location", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("meta", mode="before")
    @classmethod
    def _coerce_meta(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("link", "apply_link", mode="before")
    @classmethod
    def _coerce_link(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(v) for v in value if v]
        return []

    @property
    def resolved_apply_link(self) -> str:
        for candidate in (self.link, self.apply_link):
            if candidate and candidate.resolved:
                return candidate.resolved
        return ""


class StoryCandidate(BaseModel):
    """A job story from the headless-CMS list endpoint."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["story"] = "story"
    uuid: str
    name: str = ""
    full_slug: str = ""
    created_at: Optional[str] = None
    content: StoryContent = Field(default_factory=StoryContent)


class FeedCategory(BaseModel):
    domain: str = ""
    value: str = ""


class FeedItemCandidate(BaseModel):
    """An ``<item>`` of an RSS feed."""

    kind: Literal["feed_item"] = "feed_item"
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: Optional[str] = None
    categories: List[FeedCategory] = Field(default_factory=list)

    def category(self, domain: str) -> str:
        """First category value whose domain matches exactly."""
        for c in self.categories:
            if c.domain == domain:
                return c.value
        return ""

    def categories_for(self, domain: str) -> List[str]:
        return [c.value for c in self.categories if c.domain == domain and c.value]


RawCandidate = Annotated[
    Union[TableRowCandidate, CompanyCardCandidate, StoryCandidate, FeedItemCandidate],
    Field(discriminator="kind"),
]


class ListingDraft(BaseModel):
    """Source-extracted fields, before normalization into a ListingRecord."""

    title: str
    company_name: str = ""
    description: str = ""
    emails: List[str] = Field(default_factory=list)
    apply_link: str = ""
    relative_link: Optional[str] = None
    location: str = ""
    city: Optional[str] = None
    country: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    contract_type: str = ""
    source_agency: str = ""
    vacancy_type: str = ""
    posted_at: Optional[datetime] = None
    deadline: Optional[datetime] = None


class NotificationMeta(BaseModel):
    """Context attached to an outbound notification email."""

    job_title: str = ""
    company_name: str = ""
    source: str = "scraper"
