"""
SQLAlchemy database models.
Scheduled events mirror Calendly bookings; contacts hold contact-form submissions.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
import enum

from tripdesk.database import Base
from tripdesk.timeutils import utcnow


class EventStatus(str, enum.Enum):
    """Scheduled event status enum."""
    ACTIVE = "active"
    CANCELED = "canceled"
    PENDING = "pending"
    ROUTING_SUBMISSION = "routing_submission"


class ContactStatus(str, enum.Enum):
    """Well-known contact statuses. The column itself accepts any string."""
    PENDING = "pending"
    ACTIVE = "active"
    PROCESSED = "processed"


class DBScheduledEvent(Base):
    """Local mirror of one Calendly booking."""
    __tablename__ = "scheduled_events"

    id = Column(Integer, primary_key=True, index=True)
    provider_event_id = Column(String(255), unique=True, nullable=False, index=True)
    provider_uri = Column(String(500), nullable=False)

    event_type = Column(String(255), nullable=False)
    event_type_uri = Column(String(500))

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    invitee_email = Column(String(255), nullable=False, index=True)
    invitee_name = Column(String(255))
    invitee_phone = Column(String(50))
    invitee_uri = Column(String(500))
    organizer_email = Column(String(255))
    organizer_name = Column(String(255))

    location = Column(String(500))
    description = Column(Text)

    status = Column(String(32), default=EventStatus.ACTIVE.value, nullable=False, index=True)
    cancel_reason = Column(Text)

    provider_data = Column(JSON)

    # Provenance of the last webhook applied
    webhook_type = Column(String(64))
    webhook_payload = Column(JSON)
    webhook_processed = Column(Boolean, default=False, nullable=False)
    webhook_processed_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DBContact(Base):
    """Contact form submission."""
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    destination = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    status = Column(String(32), default=ContactStatus.PENDING.value, nullable=False)
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    # Filled once the contact books a meeting
    calendly_event_type = Column(String(255))
    calendly_start_time = Column(DateTime)
    calendly_registration_date = Column(DateTime)
    calendly_invitee_name = Column(String(255))
    calendly_invitee_uri = Column(String(500))
    calendly_event_details = Column(JSON)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DBUser(Base):
    """Local login credentials (secondary to Google sign-in)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    security_question = Column(String(500), nullable=False)
    security_answer_hash = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
