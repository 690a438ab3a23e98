"""
Calendly webhook reconciliation.

Inbound notifications are parsed into one variant per event kind, then
applied to the local scheduled_events mirror:

    invitee.created                  absent -> active (insert), any -> active (overwrite)
    invitee.canceled                 active -> canceled; absent is reported, not stored
    routing_form_submission.created  always a new record
    anything else                    logged, no mutation

Records are keyed by provider_event_id. There is no per-key lock: two
concurrent deliveries for the same event race and the last write wins. The
unique index on provider_event_id rejects a duplicate insert from that race.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from sqlalchemy.orm import Session

from tripdesk.calendly_client import provider_event_id
from tripdesk.db_models import DBScheduledEvent, EventStatus
from tripdesk.exceptions import ValidationError
from tripdesk.logging_config import get_logger
from tripdesk.models import ContactLinkage, WebhookEnvelope
from tripdesk.services import ContactService
from tripdesk.timeutils import parse_instant, utcnow

logger = get_logger(__name__)

DEFAULT_CANCEL_REASON = "Canceled by invitee"


@dataclass(frozen=True)
class InviteeCreated:
    payload: dict
    name = "invitee.created"


@dataclass(frozen=True)
class InviteeCanceled:
    payload: dict
    name = "invitee.canceled"


@dataclass(frozen=True)
class RoutingFormSubmitted:
    payload: dict
    name = "routing_form_submission.created"


@dataclass(frozen=True)
class UnsupportedWebhook:
    event: str
    payload: dict


Webhook = Union[InviteeCreated, InviteeCanceled, RoutingFormSubmitted, UnsupportedWebhook]

WEBHOOK_KINDS = {cls.name: cls for cls in (InviteeCreated, InviteeCanceled, RoutingFormSubmitted)}


def parse_webhook(envelope: Union[WebhookEnvelope, dict]) -> Webhook:
    """Turn a raw {event, payload} body into its variant."""
    if isinstance(envelope, dict):
        envelope = WebhookEnvelope(**envelope)
    kind = WEBHOOK_KINDS.get(envelope.event)
    if kind is None:
        return UnsupportedWebhook(event=envelope.event, payload=envelope.payload)
    return kind(payload=envelope.payload)


@dataclass
class ReconcileResult:
    processed: bool
    action: Optional[str] = None
    event: Optional[DBScheduledEvent] = None
    reason: Optional[str] = None
    extra: dict = field(default_factory=dict)


def _nested(payload: dict, key: str) -> dict:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _booking_fields(payload: dict) -> dict:
    """Column values for an invitee.created payload. Raises ValidationError on a bad window or missing uri."""
    uri = payload.get("uri")
    if not uri:
        raise ValidationError("Webhook payload is missing the event uri")

    start_time = parse_instant(payload.get("start_time"))
    end_time = parse_instant(payload.get("end_time"))
    if start_time is None or end_time is None:
        raise ValidationError("Webhook payload is missing start_time or end_time")
    if end_time <= start_time:
        raise ValidationError("Event end_time must be after start_time")

    event_type = _nested(payload, "event_type")
    invitee = _nested(payload, "invitee")
    organizer = _nested(payload, "organizer")
    location = payload.get("location")
    if isinstance(location, dict):
        location = location.get("location") or location.get("join_url") or location.get("type")

    return {
        "provider_event_id": provider_event_id(uri),
        "provider_uri": uri,
        "event_type": event_type.get("name") or "Event",
        "event_type_uri": event_type.get("uri"),
        "start_time": start_time,
        "end_time": end_time,
        "invitee_email": (invitee.get("email") or "unknown@example.com").lower(),
        "invitee_name": invitee.get("name") or "Guest",
        "invitee_phone": invitee.get("phone") or invitee.get("text_reminder_number"),
        "invitee_uri": invitee.get("uri"),
        "organizer_email": organizer.get("email") or "organizer@example.com",
        "organizer_name": organizer.get("name") or "Organizer",
        "location": location,
        "description": payload.get("description"),
        "provider_data": payload,
    }


class EventReconciler:
    """Applies parsed webhooks to the scheduled_events table."""

    @staticmethod
    def find(db: Session, event_id: str) -> Optional[DBScheduledEvent]:
        return db.query(DBScheduledEvent).filter(DBScheduledEvent.provider_event_id == event_id).first()

    @staticmethod
    def _mark_processed(record: DBScheduledEvent, kind: str, payload: dict, now: datetime) -> None:
        record.webhook_type = kind
        record.webhook_payload = payload
        record.webhook_processed = True
        record.webhook_processed_at = now

    @classmethod
    def apply(cls, db: Session, webhook: Webhook, now: Optional[datetime] = None) -> ReconcileResult:
        """Apply one webhook. Raises ValidationError on malformed payloads."""
        handler = _HANDLERS[type(webhook)]
        return handler(db, webhook, now or utcnow())

    @classmethod
    def _invitee_created(cls, db: Session, webhook: InviteeCreated, now: datetime) -> ReconcileResult:
        fields = _booking_fields(webhook.payload)
        record = cls.find(db, fields["provider_event_id"])

        if record is None:
            record = DBScheduledEvent(**fields)
            action = "created"
            db.add(record)
        else:
            for key, value in fields.items():
                setattr(record, key, value)
            action = "updated"

        record.status = EventStatus.ACTIVE.value
        record.cancel_reason = None
        cls._mark_processed(record, webhook.name, webhook.payload, now)
        db.commit()
        db.refresh(record)

        logger.info("webhook_event_upserted", provider_event_id=record.provider_event_id, action=action)

        extra = {}
        contact = ContactService.find_by_email(db, record.invitee_email)
        if contact is not None:
            ContactService.update_status_by_email(
                db,
                record.invitee_email,
                "active",
                ContactLinkage(
                    calendly_event_type=record.event_type,
                    calendly_start_time=record.start_time,
                    calendly_registration_date=now,
                    calendly_invitee_name=record.invitee_name,
                    calendly_invitee_uri=record.invitee_uri,
                    calendly_event_details={
                        "provider_event_id": record.provider_event_id,
                        "uri": record.provider_uri,
                        "end_time": record.end_time.isoformat(),
                        "location": record.location,
                    },
                ),
            )
            extra["contact_activated"] = contact.id

        return ReconcileResult(processed=True, action=action, event=record, extra=extra)

    @classmethod
    def _invitee_canceled(cls, db: Session, webhook: InviteeCanceled, now: datetime) -> ReconcileResult:
        payload = webhook.payload
        uri = payload.get("uri")
        if not uri:
            raise ValidationError("Webhook payload is missing the event uri")

        event_id = provider_event_id(uri)
        record = cls.find(db, event_id)
        if record is None:
            logger.warning("webhook_cancel_unknown_event", provider_event_id=event_id)
            return ReconcileResult(processed=False, reason="Event not found")

        cancellation = _nested(payload, "cancellation")
        record.status = EventStatus.CANCELED.value
        record.cancel_reason = payload.get("cancel_reason") or cancellation.get("reason") or DEFAULT_CANCEL_REASON
        cls._mark_processed(record, webhook.name, payload, now)
        db.commit()
        db.refresh(record)

        logger.info("webhook_event_canceled", provider_event_id=event_id)
        return ReconcileResult(processed=True, action="canceled", event=record)

    @classmethod
    def _routing_form_submitted(cls, db: Session, webhook: RoutingFormSubmitted, now: datetime) -> ReconcileResult:
        payload = webhook.payload
        invitee = _nested(payload, "invitee")
        submitter = _nested(payload, "submitter")
        email = invitee.get("email") or submitter.get("email") or "unknown@example.com"

        # Not a meeting: start and end are both the receipt instant.
        record = DBScheduledEvent(
            provider_event_id=f"routing_{uuid4().hex}",
            provider_uri=payload.get("uri") or "",
            event_type="Routing Form Submission",
            start_time=now,
            end_time=now,
            invitee_email=email.lower(),
            invitee_name=invitee.get("name") or submitter.get("name") or "User",
            status=EventStatus.ROUTING_SUBMISSION.value,
            provider_data=payload,
        )
        cls._mark_processed(record, webhook.name, payload, now)
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info("webhook_routing_submission_stored", provider_event_id=record.provider_event_id)
        return ReconcileResult(processed=True, action="routing_submission", event=record)

    @classmethod
    def _unsupported(cls, db: Session, webhook: UnsupportedWebhook, now: datetime) -> ReconcileResult:
        logger.warning("webhook_unsupported", webhook_event=webhook.event)
        return ReconcileResult(processed=False, reason="Unsupported webhook type")


_HANDLERS: dict[type, Callable[[Session, Any, datetime], ReconcileResult]] = {
    InviteeCreated: EventReconciler._invitee_created,
    InviteeCanceled: EventReconciler._invitee_canceled,
    RoutingFormSubmitted: EventReconciler._routing_form_submitted,
    UnsupportedWebhook: EventReconciler._unsupported,
}

_missing = set(Webhook.__args__) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"webhook variants without a handler: {sorted(c.__name__ for c in _missing)}")
