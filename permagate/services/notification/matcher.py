"""Read-only resolution of which subscribers care about an event or name."""

from permagate.common.models import Subscriber
from permagate.common.store import Store


class SubscriberMatcher:
    """Only verified subscribers with a matching subscription are returned."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def find_subscribers_by_event(self, event_type: str) -> list[Subscriber]:
        return [
            subscriber
            for subscriber in self.store.find_subscribers_by_event(event_type)
            if subscriber.verified and event_type in subscriber.subscribed_event_types
        ]

    def find_subscriptions_by_name(self, name: str) -> list[Subscriber]:
        return [subscriber for subscriber in self.store.find_subscriptions_by_name(name) if subscriber.verified]

    def find_recipients_for_name(self, event_type: str, name: str) -> list[Subscriber]:
        """Event-type subscribers plus watchers of `name`, each subscriber once."""

        seen: set[int] = set()
        recipients = []
        for subscriber in self.find_subscribers_by_event(event_type) + self.find_subscriptions_by_name(name):
            if subscriber.id in seen:
                continue
            seen.add(subscriber.id)
            recipients.append(subscriber)
        return recipients
