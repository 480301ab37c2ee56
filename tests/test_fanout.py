"""Fan-out engine settles every channel independently."""

import asyncio

from conftest import FailingProvider, RecordingProvider

from permagate.common.events import NetworkEvent, NotificationEnvelope
from permagate.services.notification.fanout import CompositeNotificationProvider, NotificationProvider


def _envelope() -> NotificationEnvelope:
    return NotificationEnvelope(
        event=NetworkEvent(event_type="epoch-created-notice", nonce=7, event_data={"data": {"epochIndex": 3}}),
        recipients=["alice@example.com"],
        subject="s",
        html="<p>h</p>",
    )


class SlowProvider(NotificationProvider):
    name = "slow"

    async def deliver(self, envelope) -> None:
        await asyncio.sleep(5)


def test_failure_in_one_channel_does_not_block_others():
    email, webhook = RecordingProvider("email"), RecordingProvider("webhook")
    composite = CompositeNotificationProvider([email, FailingProvider("slack"), webhook])

    outcomes = asyncio.run(composite.handle(_envelope()))

    assert [(o.provider, o.status) for o in outcomes] == [
        ("email", "success"),
        ("slack", "failed"),
        ("webhook", "success"),
    ]
    assert outcomes[1].error == "channel down"
    assert len(email.envelopes) == 1
    assert len(webhook.envelopes) == 1


def test_disabled_channel_is_skipped():
    disabled = RecordingProvider("discord", enabled=False)

    outcomes = asyncio.run(CompositeNotificationProvider([disabled]).handle(_envelope()))

    assert outcomes[0].status == "skipped"
    assert disabled.envelopes == []


def test_slow_channel_times_out_without_holding_siblings():
    recorder = RecordingProvider("email")
    composite = CompositeNotificationProvider([SlowProvider(), recorder], timeout_seconds=0.05)

    outcomes = asyncio.run(composite.handle(_envelope()))

    assert outcomes[0].provider == "slow"
    assert outcomes[0].status == "failed"
    assert outcomes[1].status == "success"


def test_no_providers_is_a_no_op():
    assert asyncio.run(CompositeNotificationProvider([]).handle(_envelope())) == []
