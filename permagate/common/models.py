"""Persistence models for events, subscribers, webhooks and leased ArNS names."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permagate.common.db import Base


JsonColumn = JSON().with_variant(JSONB(), "postgresql")


class Event(Base):
    """One upstream network event; `nonce` is the only dedup key."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nonce: Mapped[int] = mapped_column(BigInteger, unique=True)
    event_type: Mapped[str] = mapped_column(String, index=True)
    process_id: Mapped[str | None] = mapped_column(String, nullable=True)
    block_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    event_data: Mapped[dict] = mapped_column(JsonColumn)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class Subscriber(Base):
    """Notification recipient; only verified subscribers are notified."""

    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    premium: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    events: Mapped[list["SubscriberEvent"]] = relationship(lazy="selectin", cascade="all, delete-orphan")

    @property
    def subscribed_event_types(self) -> set[str]:
        return {row.event_type for row in self.events}


class SubscriberEvent(Base):
    """Subscriber to event-type link."""

    __tablename__ = "subscriber_events"

    subscriber_id: Mapped[int] = mapped_column(ForeignKey("subscribers.id", ondelete="CASCADE"), primary_key=True)
    event_type: Mapped[str] = mapped_column(String, primary_key=True, index=True)


class NameSubscription(Base):
    """Subscriber watching one specific ArNS name."""

    __tablename__ = "arns_name_subscriptions"
    __table_args__ = (UniqueConstraint("subscriber_id", "name", name="uq_name_subscription"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(ForeignKey("subscribers.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Webhook(Base):
    """Subscriber-owned delivery endpoint with last delivery state."""

    __tablename__ = "webhooks"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "url", name="uq_webhook_subscriber_url"),
        CheckConstraint("type IN ('custom', 'discord', 'slack')", name="ck_webhooks_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(ForeignKey("subscribers.id", ondelete="CASCADE"))
    url: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str] = mapped_column(String, default="custom")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    authorization: Mapped[str | None] = mapped_column(String, nullable=True)
    last_status: Mapped[str | None] = mapped_column(String, nullable=True)
    last_error: Mapped[str | None] = mapped_column(String, nullable=True)
    last_triggered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WebhookEvent(Base):
    """Webhook to event-type link."""

    __tablename__ = "webhook_events"

    webhook_id: Mapped[int] = mapped_column(ForeignKey("webhooks.id", ondelete="CASCADE"), primary_key=True)
    event_type: Mapped[str] = mapped_column(String, primary_key=True, index=True)


class ArnsName(Base):
    """Locally cached leased ArNS name, keyed by `name`."""

    __tablename__ = "arns_names"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, unique=True)
    process_id: Mapped[str] = mapped_column(String)
    owner: Mapped[str] = mapped_column(String, default="", index=True)
    root_tx_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Millisecond epoch timestamps, as reported by the registry.
    start_timestamp: Mapped[int] = mapped_column(BigInteger)
    end_timestamp: Mapped[int] = mapped_column(BigInteger, index=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ArnsExpirationNotification(Base):
    """Receipt for one sent expiration notice; the unique tuple is the dedup key."""

    __tablename__ = "arns_expiration_notifications"
    __table_args__ = (
        UniqueConstraint("name", "notification_type", "end_timestamp", name="uq_arns_expiration_notice"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String)
    notification_type: Mapped[str] = mapped_column(String)
    end_timestamp: Mapped[int] = mapped_column(BigInteger)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
