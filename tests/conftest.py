"""Shared fixtures: in-memory SQLite store, seed helpers and fake channels."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("SERVICE_NAME", "test")
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")
os.environ.setdefault("ARNS_POLL_INTERVAL_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from permagate.common.db import Base
from permagate.common.models import NameSubscription, Subscriber, SubscriberEvent, Webhook, WebhookEvent
from permagate.common.store import Store
from permagate.services.notification.fanout import NotificationProvider


class RecordingProvider(NotificationProvider):
    """Collects every envelope it is asked to deliver."""

    def __init__(self, name: str = "recording", enabled: bool = True) -> None:
        super().__init__(enabled=enabled)
        self.name = name
        self.envelopes = []

    async def deliver(self, envelope) -> None:
        self.envelopes.append(envelope)


class FailingProvider(NotificationProvider):
    def __init__(self, name: str = "failing", error: Exception | None = None) -> None:
        super().__init__()
        self.name = name
        self.error = error or RuntimeError("channel down")
        self.calls = 0

    async def deliver(self, envelope) -> None:
        self.calls += 1
        raise self.error


class Seeder:
    """Inserts subscribers, name watches and webhooks for a test."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def subscriber(self, email: str, event_types=(), names=(), verified: bool = True) -> int:
        with self.session_factory() as db:
            subscriber = Subscriber(email=email, verified=verified)
            subscriber.events = [SubscriberEvent(event_type=event_type) for event_type in event_types]
            db.add(subscriber)
            db.flush()
            for name in names:
                db.add(NameSubscription(subscriber_id=subscriber.id, name=name))
            db.commit()
            return subscriber.id

    def webhook(
        self,
        subscriber_id: int,
        url: str,
        event_types=(),
        type: str = "custom",
        active: bool = True,
        authorization: str | None = None,
    ) -> int:
        with self.session_factory() as db:
            webhook = Webhook(
                subscriber_id=subscriber_id,
                url=url,
                type=type,
                active=active,
                authorization=authorization,
            )
            db.add(webhook)
            db.flush()
            for event_type in event_types:
                db.add(WebhookEvent(webhook_id=webhook.id, event_type=event_type))
            db.commit()
            return webhook.id

    def get_webhook(self, webhook_id: int) -> Webhook:
        with self.session_factory() as db:
            return db.get(Webhook, webhook_id)


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return Store(session_factory)


@pytest.fixture()
def seed(session_factory):
    return Seeder(session_factory)
