"""Pydantic models for the Tripdesk API."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from tripdesk.db_models import EventStatus
from tripdesk.timeutils import as_naive_utc


class NormalizedUser(BaseModel):
    """User identity as returned by an identity provider, after normalization."""
    provider_id: str
    email: str
    given_name: str
    family_name: Optional[str] = None
    picture: Optional[str] = None


class SessionClaims(BaseModel):
    """Identity carried inside a session token."""
    subject: str
    email: str
    given_name: str
    family_name: Optional[str] = None
    picture: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.given_name} {self.family_name or ''}".strip()


# ----- Contacts -----

class ContactCreate(BaseModel):
    """Contact form submission."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2)
    email: EmailStr
    destination: str = Field(min_length=2)
    message: str = Field(min_length=10)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class ContactStatusUpdate(BaseModel):
    """Body for PUT /api/contact/{id}/status."""
    status: str = Field(min_length=1)


class ContactOut(BaseModel):
    """Contact as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    destination: str
    message: str
    status: str
    processed: bool
    processed_at: Optional[datetime] = None
    calendly_event_type: Optional[str] = None
    calendly_start_time: Optional[datetime] = None
    calendly_registration_date: Optional[datetime] = None
    calendly_invitee_name: Optional[str] = None
    calendly_invitee_uri: Optional[str] = None
    calendly_event_details: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactLinkage(BaseModel):
    """Calendly fields copied onto a contact once they book a meeting."""
    calendly_event_type: Optional[str] = None
    calendly_start_time: Optional[datetime] = None
    calendly_registration_date: Optional[datetime] = None
    calendly_invitee_name: Optional[str] = None
    calendly_invitee_uri: Optional[str] = None
    calendly_event_details: Optional[dict] = None


# ----- Scheduled events -----

class ScheduledEventOut(BaseModel):
    """Scheduled event as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_event_id: str
    provider_uri: str
    event_type: str
    event_type_uri: Optional[str] = None
    start_time: datetime
    end_time: datetime
    invitee_email: str
    invitee_name: Optional[str] = None
    invitee_phone: Optional[str] = None
    invitee_uri: Optional[str] = None
    organizer_email: Optional[str] = None
    organizer_name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    status: str
    cancel_reason: Optional[str] = None
    webhook_type: Optional[str] = None
    webhook_processed: bool
    webhook_processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ManualEventCreate(BaseModel):
    """Body for POST /calendly/events (an event recorded by hand)."""
    event_type: str = "Manual event"
    start_time: datetime
    end_time: datetime
    invitee_email: EmailStr
    invitee_name: Optional[str] = None
    status: EventStatus = EventStatus.ACTIVE
    provider_uri: Optional[str] = None
    provider_data: Optional[dict] = None

    @model_validator(mode="after")
    def check_window(self):
        if as_naive_utc(self.end_time) <= as_naive_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class CreateEventRequest(BaseModel):
    """Body for POST /calendly/create-event."""
    model_config = ConfigDict(str_strip_whitespace=True)

    start_time: datetime
    end_time: datetime
    name: str = Field(min_length=1)
    country: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if as_naive_utc(self.end_time) <= as_naive_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


# ----- Webhooks -----

class WebhookEnvelope(BaseModel):
    """Inbound Calendly webhook body: {event, payload}."""
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)


class WebhookSubscriptionCreate(BaseModel):
    """Body for POST /calendly/webhook-subscriptions."""
    url: str
    events: list[str] = Field(default_factory=lambda: ["invitee.created", "invitee.canceled"])
    organization: Optional[str] = None
    user: Optional[str] = None
    scope: str = "organization"

    @field_validator("scope")
    @classmethod
    def check_scope(cls, v: str) -> str:
        if v not in ("organization", "user"):
            raise ValueError("scope must be 'organization' or 'user'")
        return v


# ----- Local login -----

class UserRegister(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    security_question: str = Field(min_length=1)
    security_answer: str = Field(min_length=1)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class SecurityQuestionRequest(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    email: EmailStr
    security_answer: str
    new_password: str = Field(min_length=6)
