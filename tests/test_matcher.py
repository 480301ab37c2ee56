"""Subscriber matching by event type and by watched name."""

from permagate.services.notification.matcher import SubscriberMatcher


def test_event_type_matching_requires_verified_subscription(store, seed):
    seed.subscriber("alice@example.com", event_types=["join-network-notice", "buy-name-notice"])
    seed.subscriber("bob@example.com", event_types=["leave-network-notice"])
    seed.subscriber("carol@example.com", event_types=["join-network-notice"], verified=False)

    matched = SubscriberMatcher(store).find_subscribers_by_event("join-network-notice")

    assert [subscriber.email for subscriber in matched] == ["alice@example.com"]
    assert matched[0].subscribed_event_types == {"join-network-notice", "buy-name-notice"}


def test_name_watchers_are_matched(store, seed):
    seed.subscriber("alice@example.com", names=["ardrive"])
    seed.subscriber("bob@example.com", names=["other"])
    seed.subscriber("carol@example.com", names=["ardrive"], verified=False)

    matched = SubscriberMatcher(store).find_subscriptions_by_name("ardrive")

    assert [subscriber.email for subscriber in matched] == ["alice@example.com"]


def test_recipients_for_name_are_unique(store, seed):
    seed.subscriber("alice@example.com", event_types=["arns-name-expiration-notice"], names=["ardrive"])
    seed.subscriber("bob@example.com", names=["ardrive"])
    seed.subscriber("dave@example.com", event_types=["arns-name-expiration-notice"])

    matched = SubscriberMatcher(store).find_recipients_for_name("arns-name-expiration-notice", "ardrive")

    assert [subscriber.email for subscriber in matched] == [
        "alice@example.com",
        "dave@example.com",
        "bob@example.com",
    ]
