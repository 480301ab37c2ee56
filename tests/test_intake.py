"""Gateway webhook decoding and intake."""

import asyncio
import base64

import httpx

from conftest import RecordingProvider

from permagate.common.events import EventTag, GatewayWebhook, IndexedDataItem, event_from_gateway_webhook
from permagate.services.notification.fanout import CompositeNotificationProvider
from permagate.services.notification.intake import ingest_gateway_webhook
from permagate.services.notification.matcher import SubscriberMatcher
from permagate.services.notification.service import EventProcessor


def b64(value: str) -> str:
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def _webhook(tags, data=None) -> GatewayWebhook:
    return GatewayWebhook(
        event="ans104-data-item-indexed",
        data=IndexedDataItem(
            id="kQ1oW7c4n0Q8mzs3jB8X0F7mH2lKx8pQ6cVdN1rTg4E",
            tags=[EventTag(name=b64(name), value=b64(value)) for name, value in tags],
            target="QGWqtJdLLgm2ehFWiiPzMaoFLD50CnGuzZIPEdoDRGQ",
            owner_address="fallback-owner",
            data=data,
        ),
    )


NOTICE_TAGS = [
    ("Data-Protocol", "ao"),
    ("Type", "Message"),
    ("Action", "Buy-Name-Notice"),
    ("Ref_", "3117215"),
    ("From-Process", "agYcCFJtrMG6cqMuZfskIkFTGvUPddICmtQSBIoPdiA"),
]


def test_tags_decode_to_event():
    event = event_from_gateway_webhook(_webhook(NOTICE_TAGS, data={"name": "ardrive"}))

    assert event.event_type == "buy-name-notice"
    assert event.nonce == 3117215
    assert event.process_id == "agYcCFJtrMG6cqMuZfskIkFTGvUPddICmtQSBIoPdiA"
    assert event.event_data["from"] == event.process_id
    assert event.event_data["data"] == {"name": "ardrive"}
    assert {"name": "Action", "value": "Buy-Name-Notice"} in event.event_data["tags"]


def test_missing_nonce_or_bad_tags_are_ignored():
    assert event_from_gateway_webhook(_webhook([("Action", "Buy-Name-Notice")])) is None
    assert event_from_gateway_webhook(_webhook([("Action", "X"), ("Ref_", "not-a-number")])) is None
    bad = GatewayWebhook(data=IndexedDataItem(id="x", tags=[EventTag(name="***", value="***")]))
    assert event_from_gateway_webhook(bad) is None


def _processor(store, recorder):
    return EventProcessor(store, SubscriberMatcher(store), CompositeNotificationProvider([recorder]))


def test_intake_fetches_message_data_from_gateway(store, seed):
    seed.subscriber("alice@example.com", event_types=["buy-name-notice"])
    recorder = RecordingProvider()
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched.append(str(request.url))
        return httpx.Response(200, json={"name": "ardrive", "type": "lease"})

    result = asyncio.run(
        ingest_gateway_webhook(
            _webhook(NOTICE_TAGS),
            _processor(store, recorder),
            "https://gateway.test/",
            transport=httpx.MockTransport(handler),
        )
    )

    assert result.status == "processed"
    assert fetched == ["https://gateway.test/kQ1oW7c4n0Q8mzs3jB8X0F7mH2lKx8pQ6cVdN1rTg4E"]
    assert recorder.envelopes[0].subject == "\U0001f4b0 ardrive has been leased!"


def test_intake_skips_fetch_for_known_nonce(store):
    recorder = RecordingProvider()
    processor = _processor(store, recorder)
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched.append(request)
        return httpx.Response(200, json={})

    transport = httpx.MockTransport(handler)
    asyncio.run(ingest_gateway_webhook(_webhook(NOTICE_TAGS), processor, "https://gateway.test", transport=transport))
    result = asyncio.run(
        ingest_gateway_webhook(_webhook(NOTICE_TAGS), processor, "https://gateway.test", transport=transport)
    )

    assert result.status == "duplicate"
    assert len(fetched) == 1
    assert len(recorder.envelopes) == 1


def test_gateway_fetch_failure_still_processes(store):
    recorder = RecordingProvider()

    result = asyncio.run(
        ingest_gateway_webhook(
            _webhook(NOTICE_TAGS),
            _processor(store, recorder),
            "https://gateway.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )
    )

    assert result.status == "processed"
    assert recorder.envelopes[0].event.event_data["data"] is None
