"""Event processor: nonce dedup, matching and failure containment."""

import asyncio
from datetime import datetime, timezone

from conftest import FailingProvider, RecordingProvider

from permagate.common.events import NetworkEvent
from permagate.common.models import Event
from permagate.services.notification.email import EmailTransport
from permagate.services.notification.fanout import CompositeNotificationProvider
from permagate.services.notification.matcher import SubscriberMatcher
from permagate.services.notification.service import EventProcessor


def _event(nonce: int = 42, event_type: str = "buy-name-notice") -> NetworkEvent:
    return NetworkEvent(
        event_type=event_type,
        nonce=nonce,
        process_id="agYcCFJtrMG6cqMuZfskIkFTGvUPddICmtQSBIoPdiA",
        event_data={"target": "owner-address", "data": {"name": "ardrive", "type": "lease"}},
    )


def _processor(store, *providers, digest_transport=None):
    return EventProcessor(
        store,
        SubscriberMatcher(store),
        CompositeNotificationProvider(list(providers)),
        digest_transport=digest_transport,
    )


def _event_rows(session_factory, nonce):
    with session_factory() as db:
        return db.query(Event).filter(Event.nonce == nonce).all()


def test_same_nonce_twice_notifies_once(store, seed, session_factory):
    """A replayed event is recorded once and never re-sent."""

    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    recorder = RecordingProvider()
    processor = _processor(store, recorder)

    first = asyncio.run(processor.process_event(_event()))
    second = asyncio.run(processor.process_event(_event()))

    assert first.status == "processed"
    assert first.recipients == 1
    assert second.status == "duplicate"
    assert len(recorder.envelopes) == 1
    assert recorder.envelopes[0].recipients == ["alice@example.com"]
    rows = _event_rows(session_factory, 42)
    assert len(rows) == 1
    assert rows[0].processed_at is not None


def test_concurrent_duplicates_notify_once(store, seed, session_factory):
    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    recorder = RecordingProvider()
    processor = _processor(store, recorder)

    async def run():
        return await asyncio.gather(*(processor.process_event(_event()) for _ in range(3)))

    results = asyncio.run(run())

    assert sorted(result.status for result in results) == ["duplicate", "duplicate", "processed"]
    assert len(recorder.envelopes) == 1
    assert len(_event_rows(session_factory, 42)) == 1


def test_unsubscribed_and_unverified_are_not_recipients(store, seed):
    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    seed.subscriber("bob@example.com", event_types=["epoch-created-notice"])
    seed.subscriber("carol@example.com", event_types=["buy-name-notice"], verified=False)
    recorder = RecordingProvider()

    result = asyncio.run(_processor(store, recorder).process_event(_event()))

    assert result.recipients == 1
    assert recorder.envelopes[0].recipients == ["alice@example.com"]


def test_channel_failure_still_marks_event_processed(store, seed, session_factory):
    """One failing channel does not stop the others or the bookkeeping."""

    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    recorder = RecordingProvider()
    processor = _processor(store, FailingProvider(), recorder)

    result = asyncio.run(processor.process_event(_event()))

    assert result.status == "processed"
    assert {(o.provider, o.status) for o in result.outcomes} == {("failing", "failed"), ("recording", "success")}
    assert len(recorder.envelopes) == 1
    assert _event_rows(session_factory, 42)[0].processed_at is not None


def test_processing_errors_are_contained(store):
    """Store failures are reported as `failed`, never raised to the caller."""

    class BrokenMatcher(SubscriberMatcher):
        def find_subscribers_by_event(self, event_type):
            raise RuntimeError("database unavailable")

    processor = EventProcessor(store, BrokenMatcher(store), CompositeNotificationProvider([]))

    result = asyncio.run(processor.process_event(_event()))

    assert result.status == "failed"
    assert store.get_event(42) is None


def test_envelope_carries_generated_content(store, seed):
    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    recorder = RecordingProvider()

    asyncio.run(_processor(store, recorder).process_event(_event()))

    envelope = recorder.envelopes[0]
    assert envelope.subject == "\U0001f4b0 ardrive has been leased!"
    assert "ardrive" in envelope.html
    assert envelope.text.startswith(envelope.subject)


class CapturingTransport(EmailTransport):
    def __init__(self) -> None:
        self.sent = []

    async def send(self, to, subject, html, text=None) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


def test_daily_digest_groups_processed_events(store, seed):
    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    seed.subscriber("bob@example.com")
    seed.subscriber("carol@example.com", verified=False)
    transport = CapturingTransport()
    processor = _processor(store, RecordingProvider(), digest_transport=transport)
    asyncio.run(processor.process_event(_event(nonce=1)))
    asyncio.run(processor.process_event(_event(nonce=2, event_type="epoch-created-notice")))

    sent_to = asyncio.run(processor.process_daily_digest(now=datetime.now(timezone.utc)))

    assert sent_to == 2
    message = transport.sent[0]
    assert message["to"] == ["alice@example.com", "bob@example.com"]
    assert "buy-name-notice (1)" in message["text"]
    assert "epoch-created-notice (1)" in message["text"]


def test_daily_digest_without_transport_is_skipped(store, seed):
    seed.subscriber("alice@example.com")

    assert asyncio.run(_processor(store).process_daily_digest()) == 0
