"""Notification emails to contacts discovered in newly saved listings."""

from __future__ import annotations

import asyncio
import logging
from html import escape
from typing import List, Set

from .dispatch import DeliveryResult, DispatchQueue
from .models import ListingRecord, NotificationMeta

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Your vacancy is now listed on EUjobs"


def render_notification_html(record: ListingRecord, board_url: str = "https://www.eujobs.co/") -> str:
    """HTML body telling a contact that their listing was picked up."""
    title = escape(record.title)
    company = escape(record.company_name or "your organisation")
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #eee; border-radius: 5px;">
      <p>Hi there,</p>
      <p>We noticed that {company} is hiring for <strong>{title}</strong>.</p>
      <p>The vacancy now appears on our board for EU-focused job seekers, free of charge.</p>
      <p>If you would like to manage the listing or publish further roles, visit
        <a href="{board_url}">{board_url}</a>.</p>
    </div>
    """


class ContactNotifier:
    """Hands contact emails of saved listings to a ``DispatchQueue``.

    One notifier lives for one adapter run: an address is notified at most once
    per run even when several listings mention it.
    """

    def __init__(self, queue: DispatchQueue, subject: str = DEFAULT_SUBJECT) -> None:
        self.queue = queue
        self.subject = subject
        self._notified: Set[str] = set()
        self._pending: List["asyncio.Future[DeliveryResult]"] = []

    def notify(self, record: ListingRecord, emails: List[str]) -> int:
        """Queue one email per address not yet notified in this run. Returns the number queued."""
        queued = 0
        meta = NotificationMeta(
            job_title=record.title, company_name=record.company_name, source=record.source
        )
        html = render_notification_html(record)
        for email in emails:
            key = email.strip().lower()
            if not key or key in self._notified:
                continue
            self._notified.add(key)
            self._pending.append(self.queue.enqueue(email.strip(), self.subject, html, meta))
            queued += 1
        return queued

    async def wait(self) -> List[DeliveryResult]:
        """Wait for every handle queued so far and return their results."""
        if not self._pending:
            return []
        results = await asyncio.gather(*self._pending)
        self._pending = []
        return list(results)
