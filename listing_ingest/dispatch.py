"""Rate-limited outbound email dispatch.

``DispatchQueue`` owns a FIFO of ``DispatchTask`` objects and a single worker
task. Enqueueing returns an ``asyncio.Future`` straight away and starts the
worker if it is idle. The worker repeatedly takes up to ``request_limit``
tasks, sends them concurrently, waits until all of them settle, then sleeps
``time_window`` seconds before the next batch. When the queue is empty the
worker exits; the next ``enqueue`` starts a fresh one.

Every future resolves with a ``DeliveryResult``; neither application errors
from the provider nor transport exceptions fail sibling tasks of a batch.
Delivery is best effort (at most once).
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Protocol

import httpx

from .models import NotificationMeta

logger = logging.getLogger(__name__)

REQUEST_LIMIT = 2
TIME_WINDOW = 1.0  # seconds

INVALID_ADDRESS = "Invalid email address"
QUEUE_FULL = "Dispatch queue is full"
QUEUE_CLOSED = "Dispatch queue closed"
DEFAULT_CATEGORY = "job_application"


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, id: Optional[str] = None, status: str = "sent") -> "DeliveryResult":
        return cls(ok=True, id=id, status=status)

    @classmethod
    def failure(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error)


class EmailSender(Protocol):
    async def send(
        self, to: str, subject: str, html: str, tags: List[Dict[str, str]]
    ) -> DeliveryResult:
        """Deliver one message; application-level errors come back as a failure result."""
        ...


class Clock(Protocol):
    def monotonic(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    def monotonic(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass
class DispatchTask:
    recipient: str
    subject: str
    html: str
    meta: NotificationMeta
    future: "asyncio.Future[DeliveryResult]"


class DispatchQueue:
    """Fixed-batch rate limiter in front of an ``EmailSender``."""

    def __init__(
        self,
        sender: EmailSender,
        *,
        request_limit: int = REQUEST_LIMIT,
        time_window: float = TIME_WINDOW,
        clock: Optional[Clock] = None,
        max_pending: Optional[int] = None,
        category: str = DEFAULT_CATEGORY,
    ) -> None:
        if request_limit <= 0:
            raise ValueError(f"request_limit must be positive, got: {request_limit}")
        if time_window < 0:
            raise ValueError(f"time_window must not be negative, got: {time_window}")
        self.sender = sender
        self.request_limit = request_limit
        self.time_window = time_window
        self.clock: Clock = clock or SystemClock()
        self.max_pending = max_pending
        self.category = category
        self._queue: Deque[DispatchTask] = deque()
        self._worker: Optional["asyncio.Task[None]"] = None
        self._batch: List[DispatchTask] = []
        self._processing = False

    def enqueue(
        self,
        recipient: str,
        subject: str,
        html: str,
        meta: Optional[NotificationMeta] = None,
    ) -> "asyncio.Future[DeliveryResult]":
        """Queue one email and return a handle resolved once it was attempted.

        Addresses without ``@`` resolve immediately with an error and never
        take a rate-limit slot.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[DeliveryResult] = loop.create_future()
        if not recipient or "@" not in recipient:
            logger.warning(f"Invalid email address: {recipient!r}")
            future.set_result(DeliveryResult.failure(INVALID_ADDRESS))
            return future
        if self.max_pending is not None and len(self._queue) >= self.max_pending:
            logger.warning(f"Dispatch queue full ({self.max_pending}); dropping email to {recipient}")
            future.set_result(DeliveryResult.failure(QUEUE_FULL))
            return future

        self._queue.append(
            DispatchTask(recipient, subject, html, meta or NotificationMeta(), future)
        )
        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(self._drain())
        return future

    def status(self) -> Dict[str, object]:
        return {"queue_length": len(self._queue), "is_processing": self._processing}

    async def join(self) -> None:
        """Wait until every queued task has been attempted and the worker stopped."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def close(self) -> None:
        """Stop the worker; tasks still queued resolve with an error."""
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        for task in [*self._batch, *self._queue]:
            if not task.future.done():
                task.future.set_result(DeliveryResult.failure(QUEUE_CLOSED))
        self._batch = []
        self._queue.clear()
        self._processing = False

    async def _drain(self) -> None:
        try:
            while self._queue:
                self._batch = [self._queue.popleft() for _ in range(min(self.request_limit, len(self._queue)))]
                await asyncio.gather(*(self._deliver(task) for task in self._batch))
                self._batch = []
                await self.clock.sleep(self.time_window)
        finally:
            self._processing = False

    def _tags(self, meta: NotificationMeta) -> List[Dict[str, str]]:
        return [
            {"name": "source", "value": meta.source or "scraper"},
            {"name": "category", "value": self.category},
        ]

    async def _deliver(self, task: DispatchTask) -> None:
        logger.info(
            f"Sending email to {task.recipient} for job: {task.meta.job_title or 'N/A'} "
            f"at {task.meta.company_name or 'Unknown Company'}"
        )
        try:
            result = await self.sender.send(
                task.recipient, task.subject, task.html, self._tags(task.meta)
            )
        except Exception as exc:  # transport failures must not leak into sibling tasks
            logger.error(f"Failed to send email to {task.recipient}: {exc}")
            result = DeliveryResult.failure(str(exc) or exc.__class__.__name__)
        else:
            if result.ok:
                logger.info(f"Email sent successfully to {task.recipient}")
            else:
                logger.warning(f"Email to {task.recipient} rejected: {result.error}")
        if not task.future.done():
            task.future.set_result(result)


class ResendEmailSender:
    """``EmailSender`` backed by the Resend HTTP API."""

    api_url = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ) -> None:
        if not api_key:
            raise ValueError("A Resend API key is required")
        self._api_key = api_key
        self._from = from_email
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout_s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(
        self, to: str, subject: str, html: str, tags: List[Dict[str, str]]
    ) -> DeliveryResult:
        resp = await self._get_client().post(
            self.api_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={"from": self._from, "to": to, "subject": subject, "html": html, "tags": tags},
        )
        if resp.status_code >= 400:
            try:
                message = resp.json().get("message") or resp.text
            except ValueError:
                message = resp.text
            return DeliveryResult.failure(f"HTTP {resp.status_code}: {message}")
        data = resp.json()
        return DeliveryResult.success(id=data.get("id"))

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
