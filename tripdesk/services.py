"""
Service layer for database operations.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from tripdesk.calendly_client import CalendlyClient, select_best_event_type
from tripdesk.db_models import DBContact, DBScheduledEvent, DBUser, ContactStatus, EventStatus
from tripdesk.exceptions import AuthError, NotFoundError, ValidationError
from tripdesk.logging_config import get_logger
from tripdesk.models import (
    ContactCreate,
    ContactLinkage,
    CreateEventRequest,
    ManualEventCreate,
    PasswordReset,
    UserRegister,
)
from tripdesk.timeutils import as_naive_utc, utcnow

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class ScheduledEventService:
    """Service for the local mirror of Calendly events."""

    @staticmethod
    def list_recent(db: Session, limit: int = 50) -> List[DBScheduledEvent]:
        """Most recent events first, by start time."""
        return (
            db.query(DBScheduledEvent)
            .order_by(DBScheduledEvent.start_time.desc(), DBScheduledEvent.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get(db: Session, event_id: int) -> DBScheduledEvent:
        """Get event by ID."""
        event = db.query(DBScheduledEvent).filter(DBScheduledEvent.id == event_id).first()
        if not event:
            raise NotFoundError("Event not found")
        return event

    @staticmethod
    def stats(db: Session, now: Optional[datetime] = None) -> dict:
        """Counts by status plus events starting this month and in the last seven days."""
        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        week_start = now - timedelta(days=7)

        query = db.query(DBScheduledEvent)
        return {
            "total_events": query.count(),
            "active_events": query.filter(DBScheduledEvent.status == EventStatus.ACTIVE.value).count(),
            "canceled_events": query.filter(DBScheduledEvent.status == EventStatus.CANCELED.value).count(),
            "pending_events": query.filter(DBScheduledEvent.status == EventStatus.PENDING.value).count(),
            "webhook_processed": query.filter(DBScheduledEvent.webhook_processed.is_(True)).count(),
            "events_this_month": query.filter(DBScheduledEvent.start_time >= month_start).count(),
            "events_this_week": query.filter(DBScheduledEvent.start_time >= week_start).count(),
        }

    @staticmethod
    def create_manual(db: Session, data: ManualEventCreate) -> DBScheduledEvent:
        """Record an event by hand, outside of any webhook."""
        now = utcnow()
        event_id = f"manual_{uuid4().hex}"
        event = DBScheduledEvent(
            provider_event_id=event_id,
            provider_uri=data.provider_uri or f"manual://{event_id}",
            event_type=data.event_type,
            start_time=as_naive_utc(data.start_time),
            end_time=as_naive_utc(data.end_time),
            invitee_email=data.invitee_email.lower(),
            invitee_name=data.invitee_name,
            status=data.status.value,
            provider_data=data.provider_data or {},
            webhook_type="manual_creation",
            webhook_payload=data.model_dump(mode="json"),
            webhook_processed=True,
            webhook_processed_at=now,
        )
        db.add(event)
        db.commit()
        db.refresh(event)

        logger.info("event_created_manually", event_id=event.id, provider_event_id=event_id)
        return event

    @staticmethod
    async def create_programmatic(
        db: Session,
        client: CalendlyClient,
        request: CreateEventRequest,
        user_email: str,
    ) -> dict:
        """
        Create a single-use Calendly scheduling link for the requested meeting
        and keep a pending local record of it.

        Returns the booking URL, the event type that was chosen and the stored event.
        """
        me = await client.get_current_user()
        event_types = await client.list_event_types(me["uri"])
        best = select_best_event_type(event_types)
        if best is None or not best.get("uri"):
            raise ValidationError("No Calendly event types available")

        logger.info(
            "event_type_selected",
            event_type=best.get("name"),
            duration=best.get("duration"),
            candidates=len(event_types),
        )

        link = await client.create_scheduling_link(best["uri"], max_event_count=1)
        booking_url = link["booking_url"]

        event = DBScheduledEvent(
            provider_event_id=f"link_{uuid4().hex}",
            provider_uri=booking_url,
            event_type=best.get("name") or "Event",
            event_type_uri=best.get("uri"),
            start_time=as_naive_utc(request.start_time),
            end_time=as_naive_utc(request.end_time),
            invitee_email=(request.email or user_email).lower(),
            invitee_name=request.name,
            invitee_phone=request.phone,
            organizer_email=me.get("email"),
            organizer_name=me.get("name"),
            location=request.country,
            description=request.notes,
            status=EventStatus.PENDING.value,
            provider_data={"scheduling_link": link, "event_type": best, "requested_by": user_email},
            webhook_type="programmatic_creation",
            webhook_payload=request.model_dump(mode="json"),
            webhook_processed=False,
        )
        db.add(event)
        db.commit()
        db.refresh(event)

        logger.info("programmatic_event_created", event_id=event.id, requested_by=user_email)
        return {
            "schedulingLink": booking_url,
            "eventType": {
                "name": best.get("name"),
                "duration": best.get("duration"),
                "uri": best.get("uri"),
            },
            "event": event,
        }


class ContactService:
    """Service for contact form submissions."""

    @staticmethod
    def create(db: Session, data: ContactCreate) -> DBContact:
        """Store a new submission with status pending."""
        contact = DBContact(
            name=data.name,
            email=data.email.lower(),
            destination=data.destination,
            message=data.message,
            status=ContactStatus.PENDING.value,
            processed=False,
        )
        db.add(contact)
        db.commit()
        db.refresh(contact)

        logger.info("contact_created", contact_id=contact.id, destination=contact.destination)
        return contact

    @staticmethod
    def list_all(db: Session) -> List[DBContact]:
        """Newest first."""
        return db.query(DBContact).order_by(DBContact.created_at.desc(), DBContact.id.desc()).all()

    @staticmethod
    def get(db: Session, contact_id: int) -> DBContact:
        contact = db.query(DBContact).filter(DBContact.id == contact_id).first()
        if not contact:
            raise NotFoundError("Contact not found")
        return contact

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[DBContact]:
        """Most recent contact for an email, if any."""
        return (
            db.query(DBContact)
            .filter(DBContact.email == email.strip().lower())
            .order_by(DBContact.created_at.desc(), DBContact.id.desc())
            .first()
        )

    @staticmethod
    def update_status(db: Session, contact_id: int, status: str) -> DBContact:
        """Set a free-form status; 'processed' marks the contact processed."""
        contact = ContactService.get(db, contact_id)
        contact.status = status
        contact.processed = status == ContactStatus.PROCESSED.value
        contact.processed_at = utcnow() if contact.processed else None
        db.commit()
        db.refresh(contact)

        logger.info("contact_status_updated", contact_id=contact_id, status=status)
        return contact

    @staticmethod
    def update_status_by_email(
        db: Session,
        email: str,
        status: str,
        linkage: Optional[ContactLinkage] = None,
    ) -> DBContact:
        """Set the status of the contact with this email; 'active' marks it processed."""
        contact = ContactService.find_by_email(db, email)
        if not contact:
            raise NotFoundError(f"Contact with email {email} not found")

        contact.status = status
        contact.processed = status == ContactStatus.ACTIVE.value
        contact.processed_at = utcnow() if contact.processed else None

        if linkage is not None:
            for key, value in linkage.model_dump(exclude_none=True).items():
                if isinstance(value, datetime):
                    value = as_naive_utc(value)
                setattr(contact, key, value)

        db.commit()
        db.refresh(contact)

        logger.info("contact_status_updated_by_email", contact_id=contact.id, status=status)
        return contact

    @staticmethod
    def delete(db: Session, contact_id: int) -> None:
        contact = ContactService.get(db, contact_id)
        db.delete(contact)
        db.commit()
        logger.info("contact_deleted", contact_id=contact_id)


class UserService:
    """Local email/password accounts."""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[DBUser]:
        return db.query(DBUser).filter(DBUser.email == email.strip().lower()).first()

    @staticmethod
    def register(db: Session, data: UserRegister) -> DBUser:
        if UserService.get_by_email(db, data.email):
            raise ValidationError("User already exists")

        user = DBUser(
            email=data.email.lower(),
            name=data.name,
            password_hash=pwd_context.hash(data.password),
            security_question=data.security_question,
            security_answer_hash=pwd_context.hash(data.security_answer.strip().lower()),
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info("user_registered", user_id=user.id)
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> DBUser:
        user = UserService.get_by_email(db, email)
        if not user or not pwd_context.verify(password, user.password_hash):
            logger.warning("user_login_failed")
            raise AuthError("Invalid email or password")
        return user

    @staticmethod
    def security_question(db: Session, email: str) -> str:
        user = UserService.get_by_email(db, email)
        if not user:
            raise NotFoundError("User not found")
        return user.security_question

    @staticmethod
    def reset_password(db: Session, data: PasswordReset) -> DBUser:
        user = UserService.get_by_email(db, data.email)
        if not user:
            raise NotFoundError("User not found")
        if not pwd_context.verify(data.security_answer.strip().lower(), user.security_answer_hash):
            logger.warning("password_reset_rejected", user_id=user.id)
            raise AuthError("Incorrect security answer")

        user.password_hash = pwd_context.hash(data.new_password)
        db.commit()
        db.refresh(user)

        logger.info("password_reset", user_id=user.id)
        return user
