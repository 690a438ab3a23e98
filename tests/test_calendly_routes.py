"""Tests for the /calendly endpoints."""

import json
from datetime import datetime, timedelta, timezone

import httpx

from tripdesk.config import Config, config
from tripdesk.models import NormalizedUser

BOOKING_URL = "https://calendly.com/d/abc-123/consultation"
CALENDLY_ORG_URI = "https://api.calendly.com/organizations/ORG123"

CREATED = {
    "event": "invitee.created",
    "payload": {
        "uri": "https://api.calendly.com/scheduled_events/EVT1",
        "event_type": {"name": "Trip planning session"},
        "start_time": "2030-01-02T10:00:00Z",
        "end_time": "2030-01-02T10:30:00Z",
        "invitee": {"email": "ana@example.com", "name": "Ana"},
    },
}

BOOKING_REQUEST = {
    "start_time": "2030-03-01T10:00:00Z",
    "end_time": "2030-03-01T10:30:00Z",
    "name": "Ana Lopez",
    "country": "Peru",
    "notes": "Machu Picchu in spring",
}


def test_webhook_created_then_replayed(client):
    first = client.post("/calendly/webhook", json=CREATED)
    second = client.post("/calendly/webhook", json=CREATED)

    assert first.status_code == 200
    assert first.json() == {"success": True, "processed": True, "action": "created"}
    assert second.json()["action"] == "updated"

    events = client.get("/calendly/events").json()["data"]
    assert len(events) == 1
    assert events[0]["provider_event_id"] == "EVT1"


def test_webhook_cancel_unknown_event(client):
    response = client.post(
        "/calendly/webhook",
        json={"event": "invitee.canceled", "payload": {"uri": "https://api.calendly.com/scheduled_events/NOPE"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] is False
    assert body["reason"] == "Event not found"


def test_webhook_unsupported_event(client):
    response = client.post("/calendly/webhook", json={"event": "invitee_no_show.created", "payload": {}})

    assert response.status_code == 200
    assert response.json()["reason"] == "Unsupported webhook type"


def test_webhook_bad_payload_answers_500(client):
    bad = {"event": "invitee.created", "payload": {"uri": "https://api.calendly.com/scheduled_events/X"}}
    response = client.post("/calendly/webhook", json=bad)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Error processing webhook"}


def test_events_list_and_get(client):
    client.post("/calendly/webhook", json=CREATED)
    event_id = client.get("/calendly/events").json()["data"][0]["id"]

    response = client.get(f"/calendly/events/{event_id}")
    assert response.status_code == 200
    assert response.json()["data"]["invitee_email"] == "ana@example.com"

    assert client.get("/calendly/events/9999").status_code == 404


def test_manual_event_and_stats(client):
    response = client.post(
        "/calendly/events",
        json={
            "start_time": "2030-01-05T10:00:00Z",
            "end_time": "2030-01-05T11:00:00Z",
            "invitee_email": "bob@example.com",
        },
    )
    assert response.status_code == 201
    assert response.json()["data"]["provider_event_id"].startswith("manual_")

    client.post("/calendly/webhook", json=CREATED)
    client.post("/calendly/webhook", json={"event": "invitee.canceled", "payload": {"uri": CREATED["payload"]["uri"]}})

    stats = client.get("/calendly/stats").json()["data"]
    assert stats["total_events"] == 2
    assert stats["active_events"] == 1
    assert stats["canceled_events"] == 1
    assert stats["webhook_processed"] == 2


def test_manual_event_rejects_inverted_window(client):
    response = client.post(
        "/calendly/events",
        json={
            "start_time": "2030-01-05T11:00:00Z",
            "end_time": "2030-01-05T10:00:00Z",
            "invitee_email": "bob@example.com",
        },
    )
    assert response.status_code == 400


def test_create_event_requires_session(client, fake_calendly):
    response = client.post("/calendly/create-event", json=BOOKING_REQUEST)

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Not authenticated"}
    assert fake_calendly.requests == []


def test_create_event_with_expired_session_is_401(client, fake_calendly, issuer):
    stale = issuer.issue(
        NormalizedUser(provider_id="g-1", email="ana@example.com", given_name="Ana"),
        now=datetime.now(timezone.utc) - timedelta(days=2),
    )
    response = client.post(
        "/calendly/create-event",
        json=BOOKING_REQUEST,
        headers={"Authorization": f"Bearer {stale}"},
    )
    assert response.status_code == 401


def test_create_event_returns_scheduling_link(client, fake_calendly, session_token):
    client.cookies.set("jwt", session_token)

    response = client.post("/calendly/create-event", json=BOOKING_REQUEST)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["schedulingLink"] == BOOKING_URL
    assert body["data"]["eventType"]["duration"] == 15

    event = body["data"]["event"]
    assert event["status"] == "pending"
    assert event["provider_event_id"].startswith("link_")
    assert event["invitee_email"] == "ana@example.com"
    assert event["location"] == "Peru"

    link_request = next(r for r in fake_calendly.requests if r.url.path == "/scheduling_links")
    assert json.loads(link_request.content)["owner"] == "https://api.calendly.com/event_types/SHORT"


def test_create_event_without_event_types_is_400(client, fake_calendly, session_token):
    fake_calendly.event_types = []
    client.cookies.set("jwt", session_token)

    response = client.post("/calendly/create-event", json=BOOKING_REQUEST)

    assert response.status_code == 400
    assert response.json()["error"] == "No Calendly event types available"


def test_calendly_error_surfaces_as_500(client, fake_calendly, session_token):
    fake_calendly.fail_with["/scheduling_links"] = httpx.Response(
        403, json={"title": "Permission Denied", "message": "Upgrade required"}
    )
    client.cookies.set("jwt", session_token)

    response = client.post("/calendly/create-event", json=BOOKING_REQUEST)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Upgrade required"}


def test_webhook_subscriptions_roundtrip(client, fake_calendly):
    created = client.post("/calendly/webhook-subscriptions", json={"url": "https://example.com/calendly/webhook"})
    assert created.status_code == 200
    assert created.json()["data"]["state"] == "active"

    post = next(r for r in fake_calendly.requests if r.method == "POST")
    sent = json.loads(post.content)
    assert sent["organization"] == CALENDLY_ORG_URI
    assert sent["events"] == ["invitee.created", "invitee.canceled"]

    listed = client.get("/calendly/webhook-subscriptions")
    assert len(listed.json()["data"]["collection"]) == 1

    deleted = client.delete("/calendly/webhook-subscriptions/SUB123")
    assert deleted.json()["success"] is True


def test_webhook_subscription_rejects_unknown_scope(client, fake_calendly):
    response = client.post(
        "/calendly/webhook-subscriptions",
        json={"url": "https://example.com/hook", "scope": "galaxy"},
    )
    assert response.status_code == 400


def test_passthrough_endpoints(client, fake_calendly):
    assert client.get("/calendly/user-info").json()["data"]["name"] == "Olga Organizer"
    assert len(client.get("/calendly/event-types").json()["data"]) == 2
    assert client.get("/calendly/scheduled-events?count=5").json()["data"]["collection"] == []


def test_calendly_token_required_when_none_configured(client, monkeypatch):
    monkeypatch.setattr(Config, "CALENDLY_ACCESS_TOKEN", "")
    monkeypatch.setattr(config, "CALENDLY_ACCESS_TOKEN", "", raising=False)

    response = client.get("/calendly/user-info")
    assert response.status_code == 400
    assert response.json()["error"] == "Calendly access token required"


def test_access_token_is_never_echoed(client):
    body = client.get("/calendly/access-token").json()
    assert body == {"success": True, "data": {"configured": True}}
    assert "cal_test_token" not in json.dumps(body)


def test_connect_without_oauth_config_is_400(client):
    response = client.get("/calendly/connect?code=abc")
    assert response.status_code == 400


def test_ping(client):
    body = client.get("/calendly/ping").json()
    assert body["success"] is True
    assert body["timestamp"].endswith("Z")


def test_test_webhook_records_sample_and_reconciles(client):
    response = client.get("/calendly/test-webhook")

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["processed"] is True
    assert result["event"]["provider_event_id"] == "test_event_123"

    samples = client.get("/calendly/test-events").json()["data"]
    assert len(samples) == 1
    assert samples[0]["payload"]["event"] == "invitee.created"

    cleared = client.delete("/calendly/test-events").json()["data"]
    assert cleared == {"cleared": 1}
    assert client.get("/calendly/test-events").json()["data"] == []


def test_webhook_redelivery_overwrites_stored_event(client):
    first = {
        "event": "invitee.created",
        "payload": {
            **CREATED["payload"],
            "invitee": {"email": "ana@example.com", "name": "Ana", "phone": "+51 555 0101"},
        },
    }
    second = {
        "event": "invitee.created",
        "payload": {
            **CREATED["payload"],
            "start_time": "2030-01-04T08:00:00Z",
            "end_time": "2030-01-04T09:00:00Z",
            "invitee": {"email": "ana@example.com", "name": "Ana Maria"},
        },
    }

    assert client.post("/calendly/webhook", json=first).json()["action"] == "created"
    assert client.post("/calendly/webhook", json=second).json()["action"] == "updated"

    events = client.get("/calendly/events").json()["data"]
    assert len(events) == 1
    assert events[0]["start_time"] == "2030-01-04T08:00:00"
    assert events[0]["end_time"] == "2030-01-04T09:00:00"
    assert events[0]["invitee_name"] == "Ana Maria"
    assert events[0]["invitee_phone"] is None


def test_manual_event_rejects_unknown_status(client):
    response = client.post(
        "/calendly/events",
        json={
            "start_time": "2030-01-05T10:00:00Z",
            "end_time": "2030-01-05T11:00:00Z",
            "invitee_email": "bob@example.com",
            "status": "bogus",
        },
    )

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert client.get("/calendly/events").json()["data"] == []


def test_manual_event_accepts_known_status(client):
    response = client.post(
        "/calendly/events",
        json={
            "start_time": "2030-01-05T10:00:00Z",
            "end_time": "2030-01-05T11:00:00Z",
            "invitee_email": "bob@example.com",
            "status": "pending",
        },
    )

    assert response.status_code == 201
    assert response.json()["data"]["status"] == "pending"


def test_scheduled_events_forwards_start_window_as_utc(client, fake_calendly):
    response = client.get(
        "/calendly/scheduled-events",
        params={"min_start_time": "2030-01-01T02:00:00+02:00", "max_start_time": "2030-02-01T00:00:00Z"},
    )

    assert response.status_code == 200
    sent = next(r for r in fake_calendly.requests if r.url.path == "/scheduled_events")
    assert sent.url.params["min_start_time"] == "2030-01-01T00:00:00Z"
    assert sent.url.params["max_start_time"] == "2030-02-01T00:00:00Z"
