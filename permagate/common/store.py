"""Store operations used by the event, notification and ArNS services.

Every check-then-insert the services rely on is backed by a unique
constraint: callers insert and treat `IntegrityError` as "already present".
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from permagate.common.events import NetworkEvent
from permagate.common.models import (
    ArnsExpirationNotification,
    ArnsName,
    Event,
    NameSubscription,
    Subscriber,
    SubscriberEvent,
    Webhook,
    WebhookEvent,
)


@dataclass(frozen=True)
class LeasedNameRecord:
    """Registry record for one leased name plus optional resolver enrichment."""

    name: str
    process_id: str
    start_timestamp: int
    end_timestamp: int
    owner: str | None = None
    root_tx_id: str | None = None


@dataclass(frozen=True)
class ExpirationWindow:
    """Names with `end_after < end_timestamp <= end_until` are in the window."""

    notification_type: str
    end_after: int
    end_until: int


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class Store:
    """Session-per-call access to the shared database."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def get_event(self, nonce: int) -> Event | None:
        with self.session_factory() as db:
            return db.execute(select(Event).where(Event.nonce == nonce)).scalar_one_or_none()

    def create_event(self, event: NetworkEvent, processed: bool = False) -> bool:
        """Insert one event row; returns False when the nonce already exists."""

        with self.session_factory() as db:
            db.add(
                Event(
                    nonce=event.nonce,
                    event_type=event.event_type,
                    process_id=event.process_id or None,
                    block_height=event.block_height,
                    event_data=event.event_data,
                    processed_at=datetime.now(timezone.utc) if processed else None,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True

    def claim_event(self, event: NetworkEvent) -> bool:
        """Own the nonce before fan-out; False means another attempt already does."""

        return self.create_event(event, processed=False)

    def mark_event_processed(self, nonce: int) -> None:
        with self.session_factory() as db:
            db.execute(update(Event).where(Event.nonce == nonce).values(processed_at=datetime.now(timezone.utc)))
            db.commit()

    def list_processed_events_since(self, since: datetime) -> list[Event]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(Event)
                    .where(Event.processed_at.is_not(None), Event.processed_at >= since)
                    .order_by(Event.nonce.asc())
                )
                .scalars()
                .all()
            )

    def find_subscribers_by_event(self, event_type: str) -> list[Subscriber]:
        """Verified subscribers holding a subscription to `event_type`."""

        with self.session_factory() as db:
            return (
                db.execute(
                    select(Subscriber)
                    .join(SubscriberEvent, SubscriberEvent.subscriber_id == Subscriber.id)
                    .where(Subscriber.verified.is_(True), SubscriberEvent.event_type == event_type)
                    .order_by(Subscriber.id.asc())
                )
                .scalars()
                .all()
            )

    def find_subscriptions_by_name(self, name: str) -> list[Subscriber]:
        """Verified subscribers holding an explicit subscription to one ArNS name."""

        with self.session_factory() as db:
            return (
                db.execute(
                    select(Subscriber)
                    .join(NameSubscription, NameSubscription.subscriber_id == Subscriber.id)
                    .where(Subscriber.verified.is_(True), NameSubscription.name == name)
                    .order_by(Subscriber.id.asc())
                )
                .scalars()
                .all()
            )

    def list_verified_subscribers(self) -> list[Subscriber]:
        with self.session_factory() as db:
            return (
                db.execute(select(Subscriber).where(Subscriber.verified.is_(True)).order_by(Subscriber.id.asc()))
                .scalars()
                .all()
            )

    def list_active_webhooks_for_event_type(self, event_type: str) -> list[Webhook]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(Webhook)
                    .join(WebhookEvent, WebhookEvent.webhook_id == Webhook.id)
                    .where(Webhook.active.is_(True), WebhookEvent.event_type == event_type)
                    .order_by(Webhook.id.asc())
                )
                .scalars()
                .all()
            )

    def update_webhook_delivery_state(
        self,
        webhook_id: int,
        status: str,
        error: str | None,
        triggered_at: datetime,
    ) -> None:
        with self.session_factory() as db:
            db.execute(
                update(Webhook)
                .where(Webhook.id == webhook_id)
                .values(
                    last_status=status,
                    last_error=error,
                    last_triggered_at=triggered_at,
                    updated_at=triggered_at,
                )
            )
            db.commit()

    def upsert_leased_name(self, record: LeasedNameRecord) -> None:
        """Insert or update one leased name keyed on `name`.

        Missing enrichment (`owner` / `root_tx_id`) never overwrites values
        stored by an earlier sync.
        """

        now = datetime.now(timezone.utc)
        values = {
            "name": record.name,
            "process_id": record.process_id,
            "owner": record.owner or "",
            "root_tx_id": record.root_tx_id,
            "start_timestamp": record.start_timestamp,
            "end_timestamp": record.end_timestamp,
            "last_synced_at": now,
            "updated_at": now,
        }
        on_conflict = {
            "process_id": record.process_id,
            "start_timestamp": record.start_timestamp,
            "end_timestamp": record.end_timestamp,
            "last_synced_at": now,
            "updated_at": now,
        }
        if record.owner:
            on_conflict["owner"] = record.owner
        if record.root_tx_id:
            on_conflict["root_tx_id"] = record.root_tx_id

        with self.session_factory() as db:
            dialect = db.get_bind().dialect.name
            insert = _DIALECT_INSERTS.get(dialect)
            if insert is None:
                raise ValueError(f"upsert not supported for dialect={dialect}")
            stmt = insert(ArnsName).values(**values)
            db.execute(stmt.on_conflict_do_update(index_elements=["name"], set_=on_conflict))
            db.commit()

    def get_leased_name(self, name: str) -> ArnsName | None:
        with self.session_factory() as db:
            return db.execute(select(ArnsName).where(ArnsName.name == name)).scalar_one_or_none()

    def list_leased_names_nearing_expiration(self, window: ExpirationWindow) -> list[ArnsName]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(ArnsName)
                    .where(
                        ArnsName.end_timestamp > window.end_after,
                        ArnsName.end_timestamp <= window.end_until,
                    )
                    .order_by(ArnsName.end_timestamp.asc(), ArnsName.name.asc())
                )
                .scalars()
                .all()
            )

    def insert_expiration_receipt_if_absent(self, name: str, notification_type: str, end_timestamp: int) -> bool:
        """Returns True only for the caller whose insert created the receipt."""

        with self.session_factory() as db:
            db.add(
                ArnsExpirationNotification(
                    name=name,
                    notification_type=notification_type,
                    end_timestamp=end_timestamp,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True
