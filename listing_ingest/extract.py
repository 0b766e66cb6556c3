"""Description text and contact email extraction.

Two payload shapes are supported:

- rich-text documents from the CMS (``{"type": "doc", "content": [blocks]}``),
  flattened block by block into lightly formatted text;
- HTML fragments scraped from listing pages, cleaned of scripts, styles and
  source-attribution paragraphs, then reduced to whitespace-normalized text.

Both paths also collect contact email addresses. Nothing here touches the
network or the store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup

from .utils import clean_text, uniq_preserve_order

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@(?:[A-Za-z0-9-]+\.)+[A-Za-z]{2,}\b")

BLOCK_SEPARATOR = "\n\n"
BULLET = "• "

_BLOCK_TAGS = [
    "p", "div", "li", "ul", "ol", "table", "tr", "section", "article",
    "blockquote", "header", "footer", "h1", "h2", "h3", "h4", "h5", "h6",
]


@dataclass(frozen=True)
class ExtractedText:
    description: str
    emails: List[str] = field(default_factory=list)

    @property
    def first_email(self) -> Optional[str]:
        return self.emails[0] if self.emails else None


def extract_emails(text: Optional[str]) -> List[str]:
    """Return email addresses found in text, de-duplicated, first-seen order kept."""
    if not text:
        return []
    return uniq_preserve_order(EMAIL_RE.findall(text))


def _merge_emails(*groups: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        merged.extend(group)
    return uniq_preserve_order(merged)


# --- rich text --------------------------------------------------------------


def _render_inline(nodes: Optional[Sequence[Dict[str, Any]]], emails: List[str]) -> str:
    parts: List[str] = []
    for node in nodes or []:
        if not isinstance(node, dict):
            continue
        kind = node.get("type")
        if kind == "hard_break":
            parts.append("\n")
            continue
        if kind != "text":
            # Inline containers (e.g. list items inside paragraphs) carry nested content.
            nested = _render_inline(node.get("content"), emails)
            if nested:
                parts.append(nested)
            continue
        text = node.get("text") or ""
        marks = {m.get("type"): m for m in node.get("marks") or [] if isinstance(m, dict)}
        link = marks.get("link")
        if link:
            href = (link.get("attrs") or {}).get("href") or ""
            if href.lower().startswith("mailto:"):
                emails.extend(extract_emails(href[len("mailto:"):].split("?")[0]))
        if text.strip():
            if "bold" in marks and "italic" in marks:
                text = f"***{text}***"
            elif "bold" in marks:
                text = f"**{text}**"
            elif "italic" in marks:
                text = f"*{text}*"
        parts.append(text)
    return "".join(parts)


def _render_list_item(item: Dict[str, Any], emails: List[str]) -> str:
    pieces = []
    for child in item.get("content") or []:
        if not isinstance(child, dict):
            continue
        if child.get("type") in ("bullet_list", "ordered_list"):
            pieces.extend(_render_list_item(sub, emails) for sub in child.get("content") or [])
        else:
            pieces.append(_render_inline(child.get("content"), emails))
    return " ".join(p.strip() for p in pieces if p and p.strip())


def _list_start(order: Any) -> int:
    try:
        return int(order)
    except (TypeError, ValueError):
        return 1


def _render_block(block: Dict[str, Any], emails: List[str]) -> str:
    kind = block.get("type")
    if kind in ("paragraph", "heading"):
        return _render_inline(block.get("content"), emails).strip()
    if kind == "bullet_list":
        items = [_render_list_item(i, emails) for i in block.get("content") or [] if isinstance(i, dict)]
        return "\n".join(f"{BULLET}{text}" for text in items if text)
    if kind == "ordered_list":
        start = _list_start((block.get("attrs") or {}).get("order"))
        items = [_render_list_item(i, emails) for i in block.get("content") or [] if isinstance(i, dict)]
        items = [text for text in items if text]
        return "\n".join(f"{n}. {text}" for n, text in enumerate(items, start=start))
    return ""


def extract_rich_text(doc: Optional[Dict[str, Any]]) -> ExtractedText:
    """Flatten a rich-text document into text, in document order.

    Unsupported block kinds and blocks that render empty are dropped; the rest
    are joined with a blank line.
    """
    if not isinstance(doc, dict) or not isinstance(doc.get("content"), list):
        return ExtractedText(description="")
    link_emails: List[str] = []
    blocks = [_render_block(b, link_emails) for b in doc["content"] if isinstance(b, dict)]
    description = BLOCK_SEPARATOR.join(b for b in blocks if b)
    return ExtractedText(
        description=description,
        emails=_merge_emails(extract_emails(description), link_emails),
    )


# --- markup -------------------------------------------------------------------


def _strip_boilerplate(soup: BeautifulSoup, phrases: Sequence[str], markers: Sequence[str]) -> None:
    phrases = [b.lower() for b in phrases if b]
    markers = [m.lower() for m in markers if m]
    if not phrases and not markers:
        return
    for p in soup.find_all("p"):
        text = " ".join(p.get_text(" ").lower().split())
        markup = str(p).lower() if markers else ""
        if any(rule in text for rule in phrases) or any(m in markup for m in markers):
            p.decompose()


def _markup_to_text(soup: BeautifulSoup) -> str:
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for li in soup.find_all("li"):
        li.insert(0, BULLET)
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.append("\n")
    lines = (clean_text(line) for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line and line != BULLET.strip())


def _is_contact_class(css_class: Optional[str]) -> bool:
    if not css_class:
        return False
    lowered = css_class.lower()
    return "email" in lowered or "contact" in lowered


def extract_markup(
    html: Union[str, bytes, None],
    boilerplate: Sequence[str] = (),
    markup_markers: Sequence[str] = (),
) -> ExtractedText:
    """Clean an HTML fragment and return its text plus contact emails.

    ``boilerplate`` is a list of phrases; any ``<p>`` whose visible text
    contains one of them (case-insensitively) is removed before text
    extraction. ``markup_markers`` are matched against the paragraph's raw
    markup instead, for footers recognisable only by class or style names.
    """
    if not html:
        return ExtractedText(description="")
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    _strip_boilerplate(soup, boilerplate, markup_markers)

    mailto_emails: List[str] = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href.lower().startswith("mailto:"):
            mailto_emails.extend(extract_emails(href[len("mailto:"):].split("?")[0]))
    class_emails: List[str] = []
    for el in soup.find_all(class_=_is_contact_class):
        class_emails.extend(extract_emails(el.get_text(" ")))

    description = _markup_to_text(soup)
    return ExtractedText(
        description=description,
        emails=_merge_emails(extract_emails(description), mailto_emails, class_emails),
    )


def extract(payload: Union[Dict[str, Any], str, bytes, None], boilerplate: Sequence[str] = ()) -> ExtractedText:
    """Dispatch on payload shape: rich-text dict or markup string/bytes."""
    if isinstance(payload, dict):
        return extract_rich_text(payload)
    return extract_markup(payload, boilerplate)
