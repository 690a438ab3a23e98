from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripdesk.database import get_db
from tripdesk.db_models import ContactStatus, DBScheduledEvent
from tripdesk.logging_config import logger
from tripdesk.metrics import contacts_created_total
from tripdesk.models import ContactCreate, ContactLinkage, ContactOut, ContactStatusUpdate
from tripdesk.services import ContactService
from tripdesk.timeutils import utcnow

router = APIRouter(prefix="/api/contact", tags=["Contacts"])


def _contact_body(contact) -> dict:
    return ContactOut.model_validate(contact).model_dump(mode="json")


# POST /api/contact
# Gets: JSON {name, email, destination, message}
# Returns: 201 {success, data: contact, message}
# Example:
#   curl -X POST http://localhost:3000/api/contact \
#     -H 'Content-Type: application/json' \
#     -d '{"name":"Ana","email":"ana@example.com","destination":"Peru","message":"Two weeks in May please"}'
@router.post("", status_code=201)
async def create_contact(data: ContactCreate, db: Session = Depends(get_db)):
    """Store a contact form submission."""
    contact = ContactService.create(db, data)
    contacts_created_total.inc()
    return {"success": True, "data": _contact_body(contact), "message": "Contact request received"}


# GET /api/contact
# Returns: {success, data: [contact]} newest first
@router.get("")
async def list_contacts(db: Session = Depends(get_db)):
    return {"success": True, "data": [_contact_body(c) for c in ContactService.list_all(db)]}


# PUT /api/contact/activate/{email}
# Gets: path param email
# Returns: {success, data: contact, message}; 404 when no contact has that email
# Example:
#   curl -X PUT http://localhost:3000/api/contact/activate/ana@example.com
@router.put("/activate/{email}")
async def activate_contact(email: str, db: Session = Depends(get_db)):
    """
    Mark a contact active once they have booked.

    Links the latest scheduled event for that email when one is stored,
    otherwise placeholder booking details.
    """
    email = email.strip().lower()
    contact = ContactService.find_by_email(db, email)
    now = utcnow()

    event = (
        db.query(DBScheduledEvent)
        .filter(DBScheduledEvent.invitee_email == email)
        .order_by(DBScheduledEvent.start_time.desc(), DBScheduledEvent.id.desc())
        .first()
    )
    if event is not None:
        linkage = ContactLinkage(
            calendly_event_type=event.event_type,
            calendly_start_time=event.start_time,
            calendly_registration_date=now,
            calendly_invitee_name=event.invitee_name,
            calendly_invitee_uri=event.invitee_uri,
            calendly_event_details={"provider_event_id": event.provider_event_id, "uri": event.provider_uri},
        )
    else:
        linkage = ContactLinkage(
            calendly_event_type="Travel consultation",
            calendly_start_time=now,
            calendly_registration_date=now,
            calendly_invitee_name=contact.name if contact else None,
            calendly_event_details={"source": "calendly-registration"},
        )

    updated = ContactService.update_status_by_email(db, email, ContactStatus.ACTIVE.value, linkage)
    logger.info("contact_activated", contact_id=updated.id, linked_event=event is not None)
    return {"success": True, "data": _contact_body(updated), "message": "Contact activated"}


# GET /api/contact/{contact_id}
# Returns: {success, data: contact}; 404 when unknown
@router.get("/{contact_id}")
async def get_contact(contact_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": _contact_body(ContactService.get(db, contact_id))}


# PUT /api/contact/{contact_id}/status
# Gets: JSON {status}
# Returns: {success, data: contact, message}
# Example:
#   curl -X PUT http://localhost:3000/api/contact/1/status \
#     -H 'Content-Type: application/json' -d '{"status":"processed"}'
@router.put("/{contact_id}/status")
async def update_contact_status(contact_id: int, data: ContactStatusUpdate, db: Session = Depends(get_db)):
    contact = ContactService.update_status(db, contact_id, data.status)
    return {"success": True, "data": _contact_body(contact), "message": "Status updated"}


# DELETE /api/contact/{contact_id}
# Returns: {success, message}; 404 when unknown
@router.delete("/{contact_id}")
async def delete_contact(contact_id: int, db: Session = Depends(get_db)):
    ContactService.delete(db, contact_id)
    return {"success": True, "message": "Contact deleted"}
