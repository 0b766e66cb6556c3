"""Normalization & heuristics.

This module contains deterministic parsing logic used to turn scraped text into
canonical listing fields:
- slug generation
- seniority inference
- remote status inference
- salary estimation
- contract / employment type inference
- location splitting

Every inference is an ordered rule table (first match wins) evaluated by a tiny
function, so precedence is visible in one place and each table can be unit
tested on its own. All functions are total: unknown input degrades to a
default value, nothing raises.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Callable, List, Optional, Sequence, Tuple

DEFAULT_SENIORITY = "mid-level"
DEFAULT_EMPLOYMENT_TYPE = "full-time"

# (keywords, label), checked against the lower-cased title only.
SENIORITY_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("intern", "trainee"), "intern"),
    (("junior", "assistant"), "junior"),
    (("senior", "manager", "lead"), "senior"),
]

CONTRACT_TYPE_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("permanent", "indefinite"), "permanent"),
    (("fixed term", "fixed-term", "temporary"), "fixed-term"),
    (("freelance", "contractor"), "freelance"),
    (("internship", "trainee"), "internship"),
]

EMPLOYMENT_TYPE_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("part-time", "part time"), "part-time"),
]

_REMOTE_WORD_RE = re.compile(r"\bremote\b")


def _is_fully_remote(text: str) -> bool:
    return "fully remote" in text or "100% remote" in text


def _is_plain_remote(text: str) -> bool:
    return bool(_REMOTE_WORD_RE.search(text)) and "hybrid" not in text and "office" not in text


def _is_hybrid(text: str) -> bool:
    return any(p in text for p in ("hybrid", "remote option", "partially remote"))


def _is_remote_with_office(text: str) -> bool:
    return "remote" in text and ("office" in text or "onsite" in text)


# Yes-rules come first.
REMOTE_STATUS_RULES: List[Tuple[Callable[[str], bool], str]] = [
    (_is_fully_remote, "yes"),
    (_is_plain_remote, "yes"),
    (_is_hybrid, "partial"),
    (_is_remote_with_office, "partial"),
]

_CURRENCY = r"(?:€|EUR|£|GBP|\$|USD|CHF)"
_AMOUNT = r"(\d{1,3}(?:[., \u00a0]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"
_PERIOD = (
    r"\s*(?:gross\s+|net\s+)?"
    r"(?:(?:per|a|an|/)\s*(?:month|year|annum)\b|monthly\b|yearly\b|annually\b)"
)

SALARY_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("currency-first", re.compile(_CURRENCY + r"\s?" + _AMOUNT + _PERIOD, re.IGNORECASE)),
    ("amount-first", re.compile(_AMOUNT + r"\s?" + _CURRENCY + _PERIOD, re.IGNORECASE)),
]

_GROUPED_RE = re.compile(r"\d{1,3}(?:[., \u00a0]\d{3})+")
_GROUPED_DECIMAL_RE = re.compile(r"(\d{1,3}(?:[., \u00a0]\d{3})+)[.,](\d{1,2})")
_PLAIN_RE = re.compile(r"\d+(?:[.,]\d{1,2})?")
_SEPARATOR_RE = re.compile(r"[., \u00a0]")


def _first_keyword_match(
    text: str, rules: Sequence[Tuple[Tuple[str, ...], str]]
) -> Optional[str]:
    for keywords, label in rules:
        if any(kw in text for kw in keywords):
            return label
    return None


def _slug_part(value: Optional[str]) -> str:
    folded = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^\w\s-]", "", folded.lower())
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-")


def slugify_listing(title: Optional[str], company: Optional[str], listing_id: object) -> str:
    """Build ``{title}-at-{company}-{last 6 chars of id}``.

    The result only contains ``[a-z0-9-]``. Empty title/company fall back to
    ``untitled`` / ``unknown-company``.
    """
    title_slug = _slug_part(title) or "untitled"
    company_slug = _slug_part(company) or "unknown-company"
    short_id = re.sub(r"[^a-z0-9]", "", str(listing_id or "").lower())[-6:]
    slug = f"{title_slug}-at-{company_slug}"
    return f"{slug}-{short_id}" if short_id else slug


def infer_seniority(title: Optional[str]) -> str:
    """Infer seniority from the job title; mid-level when nothing matches."""
    t = (title or "").lower()
    return _first_keyword_match(t, SENIORITY_RULES) or DEFAULT_SENIORITY


def infer_remote_status(text: Optional[str]) -> str:
    """Classify remote work as ``yes``, ``partial`` or ``no``."""
    t = (text or "").lower()
    for predicate, label in REMOTE_STATUS_RULES:
        if predicate(t):
            return label
    return "no"


def _parse_amount(raw: str) -> float:
    amount = raw.strip()
    if _GROUPED_RE.fullmatch(amount):
        return float(_SEPARATOR_RE.sub("", amount))
    m = _GROUPED_DECIMAL_RE.fullmatch(amount)
    if m:
        return float(f"{_SEPARATOR_RE.sub('', m.group(1))}.{m.group(2)}")
    if _PLAIN_RE.fullmatch(amount):
        return float(amount.replace(",", "."))
    raise ValueError(f"unrecognised amount {raw!r}")


def estimate_salary(text: Optional[str]) -> float:
    """Return the first salary amount quoted with a currency and a period, else 0.

    The amount is returned as stated (monthly figures are not annualised).
    """
    t = text or ""
    for _name, pattern in SALARY_PATTERNS:
        m = pattern.search(t)
        if not m:
            continue
        try:
            return _parse_amount(m.group(1))
        except ValueError:
            return 0
    return 0


def infer_contract_type(explicit: Optional[str], text: Optional[str]) -> str:
    """Use the source's explicit contract type verbatim, else infer it from text."""
    if explicit and explicit.strip():
        return explicit
    t = (text or "").lower()
    return _first_keyword_match(t, CONTRACT_TYPE_RULES) or ""


def infer_employment_type(text: Optional[str]) -> str:
    t = (text or "").lower()
    return _first_keyword_match(t, EMPLOYMENT_TYPE_RULES) or DEFAULT_EMPLOYMENT_TYPE


def split_location(raw: Optional[str]) -> Tuple[str, str, str]:
    """Split ``"City, [State, ]Country"`` into ``(city, state, country)``.

    Without a comma the whole string is the city.
    """
    value = (raw or "").strip()
    if "," not in value:
        return value, "", ""
    parts = [p.strip() for p in value.split(",")]
    city, country = parts[0], parts[-1]
    state = parts[1] if len(parts) > 2 else ""
    return city, state, country
