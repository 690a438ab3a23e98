from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tripdesk.calendly_client import CalendlyClient, get_calendly_client
from tripdesk.config import config
from tripdesk.database import get_db
from tripdesk.exceptions import ValidationError, error_body
from tripdesk.logging_config import logger
from tripdesk.metrics import scheduling_links_created_total, webhooks_received_total
from tripdesk.models import (
    CreateEventRequest,
    ManualEventCreate,
    ScheduledEventOut,
    SessionClaims,
    WebhookEnvelope,
    WebhookSubscriptionCreate,
)
from tripdesk.sample_store import SampleEventStore, get_sample_store
from tripdesk.services import ScheduledEventService
from tripdesk.session import require_user
from tripdesk.timeutils import isoformat_utc, utcnow
from tripdesk.webhooks import WEBHOOK_KINDS, EventReconciler, parse_webhook

router = APIRouter(prefix="/calendly", tags=["Calendly"])

SAMPLE_EVENT_URI = "https://api.calendly.com/scheduled_events/test_event_123"


def _event_body(event) -> dict:
    return ScheduledEventOut.model_validate(event).model_dump(mode="json")


def get_calendly_oauth_client() -> CalendlyClient:
    """Dependency: tokenless client used for the OAuth code exchange."""
    if not config.has_calendly_oauth():
        raise ValidationError("Calendly OAuth is not configured")
    return CalendlyClient(
        access_token="",
        base_url=config.CALENDLY_API_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )


# ----- Webhooks -----

# POST /calendly/webhook
# Gets: Calendly webhook body {event, payload}
# Returns: {success, processed, action, reason?}; 500 {success: false, error} on failure
# Example:
#   curl -X POST http://localhost:3000/calendly/webhook \
#     -H 'Content-Type: application/json' \
#     -d '{"event":"invitee.canceled","payload":{"uri":"https://api.calendly.com/scheduled_events/ABC"}}'
@router.post("/webhook")
async def calendly_webhook(body: dict = Body(...), db: Session = Depends(get_db)):
    """Receive a Calendly notification and reconcile the local mirror."""
    event_name = body.get("event")
    logger.info("webhook_received", webhook_event=event_name)
    label = event_name if event_name in WEBHOOK_KINDS else "unsupported"

    try:
        result = EventReconciler.apply(db, parse_webhook(WebhookEnvelope(**body)))
    except Exception:
        db.rollback()
        logger.exception("webhook_processing_failed", webhook_event=event_name)
        webhooks_received_total.labels(event=label, action="error").inc()
        return JSONResponse(error_body("Error processing webhook"), status_code=500)

    webhooks_received_total.labels(event=label, action=result.action or "ignored").inc()

    response = {
        "success": True,
        "processed": result.processed,
        "action": result.action or "processed",
    }
    if result.reason:
        response["reason"] = result.reason
    return response


# POST /calendly/webhook-subscriptions?token=...
# Gets: JSON {url, events?, organization?, user?, scope?}
# Returns: {success, data: subscription resource}
@router.post("/webhook-subscriptions")
async def create_webhook_subscription(
    data: WebhookSubscriptionCreate,
    client: CalendlyClient = Depends(get_calendly_client),
):
    """Register a Calendly webhook subscription. Organization defaults to the token owner's."""
    organization = data.organization
    user = data.user
    if not organization or (data.scope == "user" and not user):
        me = await client.get_current_user()
        organization = organization or me.get("current_organization")
        if data.scope == "user":
            user = user or me["uri"]

    subscription = await client.create_webhook_subscription(
        url=data.url,
        events=data.events,
        organization=organization,
        scope=data.scope,
        user=user,
    )
    return {"success": True, "data": subscription}


# GET /calendly/webhook-subscriptions?token=...&organization=...&scope=organization
# Returns: {success, data: {collection, pagination}}
@router.get("/webhook-subscriptions")
async def list_webhook_subscriptions(
    organization: Optional[str] = None,
    scope: str = "organization",
    client: CalendlyClient = Depends(get_calendly_client),
):
    data = await client.list_webhook_subscriptions(organization=organization, scope=scope)
    return {"success": True, "data": data}


# DELETE /calendly/webhook-subscriptions/{uuid}?token=...
# Returns: {success, message}
# Example:
#   curl -X DELETE 'http://localhost:3000/calendly/webhook-subscriptions/0a1b2c3d?token=...'
@router.delete("/webhook-subscriptions/{webhook_uuid}")
async def delete_webhook_subscription(
    webhook_uuid: str,
    client: CalendlyClient = Depends(get_calendly_client),
):
    await client.delete_webhook_subscription(webhook_uuid)
    return {"success": True, "message": "Webhook subscription deleted"}


# ----- Local event mirror -----

# GET /calendly/events
# Returns: {success, data: [event]} - at most 50, latest start first
# Example:
#   curl http://localhost:3000/calendly/events
@router.get("/events")
async def list_events(db: Session = Depends(get_db)):
    events = ScheduledEventService.list_recent(db, limit=50)
    return {"success": True, "data": [_event_body(e) for e in events]}


# GET /calendly/events/{event_id}
# Returns: {success, data: event}; 404 when unknown
@router.get("/events/{event_id}")
async def get_event(event_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": _event_body(ScheduledEventService.get(db, event_id))}


# POST /calendly/events
# Gets: JSON ManualEventCreate
# Returns: {success, data: event, message}
@router.post("/events", status_code=201)
async def create_event(data: ManualEventCreate, db: Session = Depends(get_db)):
    """Record an event by hand."""
    event = ScheduledEventService.create_manual(db, data)
    return {"success": True, "data": _event_body(event), "message": "Event created"}


# GET /calendly/stats
# Returns: {success, data: {total_events, active_events, canceled_events, ...}}
@router.get("/stats")
async def event_stats(db: Session = Depends(get_db)):
    return {"success": True, "data": ScheduledEventService.stats(db)}


# ----- Calendly API passthrough -----

# GET /calendly/connect?code=...
# Gets: the authorization code Calendly redirected back with
# Returns: {success, data: {accessToken, userInfo}}
@router.get("/connect")
async def connect_calendly(
    code: Optional[str] = None,
    client: CalendlyClient = Depends(get_calendly_oauth_client),
):
    """Finish the Calendly OAuth flow for a connecting account."""
    if not code:
        raise ValidationError("Authorization code required")

    access_token = await client.exchange_code(
        code,
        client_id=config.CALENDLY_CLIENT_ID,
        client_secret=config.CALENDLY_CLIENT_SECRET,
        redirect_uri=config.CALENDLY_REDIRECT_URL,
    )
    user_info = await client.get_current_user()
    logger.info("calendly_connected", user_uri=user_info.get("uri"))
    return {"success": True, "data": {"accessToken": access_token, "userInfo": user_info}}


# GET /calendly/user-info?token=...
# Returns: {success, data: Calendly user resource}
@router.get("/user-info")
async def user_info(client: CalendlyClient = Depends(get_calendly_client)):
    return {"success": True, "data": await client.get_current_user()}


# GET /calendly/event-types?token=...&active=true
# Returns: {success, data: [event type]}
@router.get("/event-types")
async def event_types(
    active: Optional[bool] = None,
    client: CalendlyClient = Depends(get_calendly_client),
):
    me = await client.get_current_user()
    return {"success": True, "data": await client.list_event_types(me["uri"], active=active)}


# GET /calendly/scheduled-events?token=...&count=20&status=active&min_start_time=2030-01-01T00:00:00Z
# Gets: optional count, status, min_start_time, max_start_time (ISO 8601), page_token
# Returns: {success, data: {collection, pagination}}
@router.get("/scheduled-events")
async def scheduled_events(
    count: Optional[int] = Query(None, ge=1, le=100),
    status: Optional[str] = None,
    min_start_time: Optional[datetime] = None,
    max_start_time: Optional[datetime] = None,
    page_token: Optional[str] = None,
    client: CalendlyClient = Depends(get_calendly_client),
):
    data = await client.list_scheduled_events(
        count=count,
        status=status,
        min_start_time=min_start_time,
        max_start_time=max_start_time,
        page_token=page_token,
    )
    return {"success": True, "data": data}


# GET /calendly/ping
# Returns: {success, message, timestamp}
@router.get("/ping")
async def ping():
    return {
        "success": True,
        "message": "Calendly service is running",
        "timestamp": isoformat_utc(utcnow()),
    }


# GET /calendly/access-token
# Returns: {success, data: {configured}} - the token itself is never returned
@router.get("/access-token")
async def access_token_status():
    if not config.has_calendly_token():
        return {"success": False, "error": "CALENDLY_ACCESS_TOKEN is not configured"}
    return {"success": True, "data": {"configured": True}}


# ----- Simulated webhooks -----

# GET /calendly/test-webhook
# Returns: {success, message, result: {processed, action}} after reconciling a sample invitee.created
# Example:
#   curl http://localhost:3000/calendly/test-webhook
@router.get("/test-webhook")
async def test_webhook(
    db: Session = Depends(get_db),
    store: SampleEventStore = Depends(get_sample_store),
):
    """Feed a sample invitee.created through the reconciler."""
    now = utcnow()
    sample = {
        "event": "invitee.created",
        "payload": {
            "uri": SAMPLE_EVENT_URI,
            "event_type": {
                "name": "Test Event Type",
                "uri": "https://api.calendly.com/event_types/test_type_123",
            },
            "start_time": isoformat_utc(now),
            "end_time": isoformat_utc(now + timedelta(hours=1)),
            "invitee": {
                "email": "test@example.com",
                "name": "Test User",
                "uri": f"{SAMPLE_EVENT_URI}/invitees/test_invitee_123",
            },
            "organizer": {"email": "organizer@example.com", "name": "Test Organizer"},
            "location": "Test Location",
            "description": "Test event description",
        },
    }

    store.put(f"{sample['event']}:{isoformat_utc(now)}", sample)
    result = EventReconciler.apply(db, parse_webhook(sample), now=now)

    return {
        "success": True,
        "message": "Test webhook processed successfully",
        "result": {
            "processed": result.processed,
            "action": result.action,
            "event": _event_body(result.event) if result.event is not None else None,
        },
    }


# GET /calendly/test-events
# Returns: {success, data: [{key, payload}]} - sample payloads sent so far
@router.get("/test-events")
async def list_test_events(store: SampleEventStore = Depends(get_sample_store)):
    return {"success": True, "data": store.list()}


# DELETE /calendly/test-events
# Returns: {success, data: {cleared}}
@router.delete("/test-events")
async def clear_test_events(store: SampleEventStore = Depends(get_sample_store)):
    cleared = store.clear()
    logger.info("sample_events_cleared", count=cleared)
    return {"success": True, "data": {"cleared": cleared}}


# ----- Programmatic scheduling -----

# POST /calendly/create-event
# Gets: valid session; JSON {start_time, end_time, name, country, email?, phone?, notes?}
# Returns: {success, data: {schedulingLink, eventType, event}, message}
# Example:
#   curl -X POST http://localhost:3000/calendly/create-event -b 'jwt=<token>' \
#     -H 'Content-Type: application/json' \
#     -d '{"start_time":"2026-11-02T10:00:00Z","end_time":"2026-11-02T10:30:00Z","name":"Ana","country":"Peru"}'
@router.post("/create-event")
async def create_programmatic_event(
    data: CreateEventRequest,
    user: SessionClaims = Depends(require_user),
    client: CalendlyClient = Depends(get_calendly_client),
    db: Session = Depends(get_db),
):
    """Create a single-use scheduling link for the signed-in user."""
    result = await ScheduledEventService.create_programmatic(db, client, data, user.email)
    scheduling_links_created_total.inc()

    return {
        "success": True,
        "data": {
            "schedulingLink": result["schedulingLink"],
            "eventType": result["eventType"],
            "event": _event_body(result["event"]),
        },
        "message": "Event created successfully",
    }
