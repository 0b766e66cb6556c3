import asyncio
import json
import time

import httpx
import pytest

from listing_ingest.dispatch import (
    INVALID_ADDRESS,
    QUEUE_FULL,
    DeliveryResult,
    DispatchQueue,
    ResendEmailSender,
)
from listing_ingest.models import NotificationMeta


class FakeSender:
    """Records deliveries and the peak number of concurrent sends."""

    def __init__(self, fail_for=(), raise_for=()):
        self.sent = []
        self.in_flight = 0
        self.peak = 0
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    async def send(self, to, subject, html, tags):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0)
            if to in self.raise_for:
                raise httpx.ConnectError("connection reset")
            self.sent.append((to, subject, tags))
            if to in self.fail_for:
                return DeliveryResult.failure("HTTP 422: invalid recipient")
            return DeliveryResult.success(id=f"msg-{len(self.sent)}")
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_batches_of_two_with_window_between(fake_clock):
    sender = FakeSender()
    queue = DispatchQueue(sender, clock=fake_clock)
    futures = [queue.enqueue(f"c{i}@ngo.org", "Hello", "<p>hi</p>") for i in range(5)]
    results = await asyncio.gather(*futures)

    assert all(r.ok for r in results)
    assert [to for to, _, _ in sender.sent] == [f"c{i}@ngo.org" for i in range(5)]
    assert sender.peak <= 2
    # three batches (2 + 2 + 1), each followed by the window
    await queue.join()
    assert fake_clock.sleeps == [1.0, 1.0, 1.0]
    assert queue.status() == {"queue_length": 0, "is_processing": False}


@pytest.mark.asyncio
async def test_invalid_address_resolves_immediately_without_a_slot(fake_clock):
    sender = FakeSender()
    queue = DispatchQueue(sender, clock=fake_clock)
    future = queue.enqueue("not-an-email", "Hello", "<p>hi</p>")
    assert future.done()
    assert future.result() == DeliveryResult.failure(INVALID_ADDRESS)
    assert queue.status()["is_processing"] is False
    assert sender.sent == []


@pytest.mark.asyncio
async def test_failures_do_not_affect_siblings(fake_clock):
    sender = FakeSender(fail_for={"bad@ngo.org"}, raise_for={"down@ngo.org"})
    queue = DispatchQueue(sender, clock=fake_clock)
    ok = queue.enqueue("ok@ngo.org", "s", "h")
    bad = queue.enqueue("bad@ngo.org", "s", "h")
    down = queue.enqueue("down@ngo.org", "s", "h")
    later = queue.enqueue("later@ngo.org", "s", "h")

    assert (await ok).ok
    assert (await bad).error == "HTTP 422: invalid recipient"
    down_result = await down
    assert not down_result.ok
    assert "connection reset" in down_result.error
    assert (await later).ok


@pytest.mark.asyncio
async def test_queue_restarts_after_draining(fake_clock):
    sender = FakeSender()
    queue = DispatchQueue(sender, clock=fake_clock)
    assert (await queue.enqueue("a@ngo.org", "s", "h")).ok
    await queue.join()
    assert queue.status()["is_processing"] is False
    assert (await queue.enqueue("b@ngo.org", "s", "h")).ok
    assert len(sender.sent) == 2


@pytest.mark.asyncio
async def test_bounded_queue_rejects_overflow(fake_clock):
    queue = DispatchQueue(FakeSender(), clock=fake_clock, max_pending=1)
    first = queue.enqueue("a@ngo.org", "s", "h")
    second = queue.enqueue("b@ngo.org", "s", "h")
    assert second.done()
    assert second.result().error == QUEUE_FULL
    assert (await first).ok


@pytest.mark.asyncio
async def test_tags_carry_source_and_category(fake_clock):
    sender = FakeSender()
    queue = DispatchQueue(sender, clock=fake_clock)
    await queue.enqueue("a@ngo.org", "s", "h", NotificationMeta(job_title="Officer", source="eurobrussels"))
    assert sender.sent[0][2] == [
        {"name": "source", "value": "eurobrussels"},
        {"name": "category", "value": "job_application"},
    ]


@pytest.mark.asyncio
async def test_real_time_window_spacing():
    sender = FakeSender()
    queue = DispatchQueue(sender, time_window=0.05)
    started = time.monotonic()
    await asyncio.gather(*(queue.enqueue(f"c{i}@ngo.org", "s", "h") for i in range(3)))
    elapsed = time.monotonic() - started
    # the third email waits for the first window to pass
    assert elapsed >= 0.05
    await queue.join()


@pytest.mark.asyncio
async def test_close_resolves_pending_tasks(fake_clock):
    queue = DispatchQueue(FakeSender(), clock=fake_clock)
    futures = [queue.enqueue(f"c{i}@ngo.org", "s", "h") for i in range(4)]
    await queue.close()
    results = [f.result() for f in futures]
    assert all(not r.ok for r in results)


def test_rejects_bad_limits():
    with pytest.raises(ValueError):
        DispatchQueue(FakeSender(), request_limit=0)
    with pytest.raises(ValueError):
        DispatchQueue(FakeSender(), time_window=-1)


@pytest.mark.asyncio
async def test_resend_sender_posts_payload_and_maps_errors():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append((request, body))
        if body["to"] == "bad@ngo.org":
            return httpx.Response(422, json={"message": "Invalid `to` field"})
        return httpx.Response(200, json={"id": "re_123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = ResendEmailSender("re_key", "jobs@eujobs.co", client=client)
        ok = await sender.send("hr@ngo.org", "Subject", "<p>x</p>", [{"name": "source", "value": "jobsin"}])
        bad = await sender.send("bad@ngo.org", "Subject", "<p>x</p>", [])

    assert ok == DeliveryResult.success(id="re_123")
    assert bad == DeliveryResult.failure("HTTP 422: Invalid `to` field")
    request, body = requests[0]
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["Authorization"] == "Bearer re_key"
    assert body == {
        "from": "jobs@eujobs.co",
        "to": "hr@ngo.org",
        "subject": "Subject",
        "html": "<p>x</p>",
        "tags": [{"name": "source", "value": "jobsin"}],
    }


def test_resend_sender_requires_key():
    with pytest.raises(ValueError):
        ResendEmailSender("", "jobs@eujobs.co")
