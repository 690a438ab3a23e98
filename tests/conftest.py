import os

# Point the engine at a private in-memory database before tripdesk is imported.
os.environ["DATABASE_URL"] = "sqlite://"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tripdesk import db_models  # noqa: E402,F401
from tripdesk.calendly_client import CalendlyClient, get_calendly_client  # noqa: E402
from tripdesk.config import Config, config  # noqa: E402
from tripdesk.database import Base, SessionLocal, engine  # noqa: E402
from tripdesk.main import app  # noqa: E402
from tripdesk.models import NormalizedUser  # noqa: E402
from tripdesk.sample_store import InMemorySampleEventStore  # noqa: E402
from tripdesk.session import SessionIssuer  # noqa: E402

TEST_JWT_SECRET = "test-secret"
FRONTEND_URL = "http://frontend.test"
CALENDLY_USER_URI = "https://api.calendly.com/users/USER123"
CALENDLY_ORG_URI = "https://api.calendly.com/organizations/ORG123"
BOOKING_URL = "https://calendly.com/d/abc-123/consultation"

EVENT_TYPES = [
    {
        "uri": "https://api.calendly.com/event_types/LONG",
        "name": "Trip planning session",
        "active": True,
        "type": "StandardEventType",
        "kind": "solo",
        "pooling_type": None,
        "duration": 30,
    },
    {
        "uri": "https://api.calendly.com/event_types/SHORT",
        "name": "Quick call",
        "active": True,
        "type": "StandardEventType",
        "kind": "solo",
        "pooling_type": None,
        "duration": 15,
    },
]


@pytest.fixture(autouse=True)
def _safe_test_config(monkeypatch):
    """Force deterministic, offline-safe config for tests.

    The repo loads .env on import; these overrides keep real credentials out
    and make sure nothing talks to Google or Calendly.
    """
    overrides = {
        "JWT_SECRET": TEST_JWT_SECRET,
        "JWT_ALGORITHM": "HS256",
        "JWT_EXPIRES_HOURS": 24,
        "SESSION_COOKIE_NAME": "jwt",
        "COOKIE_SECURE": False,
        "FRONTEND_URL": FRONTEND_URL,
        "GOOGLE_CLIENT_ID": "google-client-id",
        "GOOGLE_CLIENT_SECRET": "google-client-secret",
        "GOOGLE_CALLBACK_URL": "http://testserver/auth/google/callback",
        "CALENDLY_ACCESS_TOKEN": "cal_test_token",
        "CALENDLY_CLIENT_ID": "",
        "CALENDLY_CLIENT_SECRET": "",
        "CALENDLY_REDIRECT_URL": "",
    }
    for name, value in overrides.items():
        monkeypatch.setattr(Config, name, value, raising=False)
        # Keep the instance in sync for any code that reads instance attributes directly.
        monkeypatch.setattr(config, name, value, raising=False)
    return config


@pytest.fixture(autouse=True)
def _fresh_database():
    """Every test starts with empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def _fresh_app_state():
    app.state.sample_store = InMemorySampleEventStore()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def issuer():
    return SessionIssuer(secret=TEST_JWT_SECRET)


@pytest.fixture
def session_token(issuer):
    """A valid session token for a signed-in traveller."""
    return issuer.issue(
        NormalizedUser(
            provider_id="google-123",
            email="ana@example.com",
            given_name="Ana",
            family_name="Lopez",
            picture="https://example.com/ana.png",
        )
    )


class FakeCalendly:
    """Canned Calendly API answers served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.event_types = list(EVENT_TYPES)
        self.fail_with: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.fail_with:
            return self.fail_with[path]

        if request.method == "GET" and path == "/users/me":
            return httpx.Response(200, json={"resource": {
                "uri": CALENDLY_USER_URI,
                "name": "Olga Organizer",
                "email": "olga@example.com",
                "current_organization": CALENDLY_ORG_URI,
            }})
        if request.method == "GET" and path == "/event_types":
            return httpx.Response(200, json={"collection": self.event_types, "pagination": {}})
        if request.method == "POST" and path == "/scheduling_links":
            return httpx.Response(201, json={"resource": {
                "booking_url": BOOKING_URL,
                "owner": EVENT_TYPES[1]["uri"],
                "owner_type": "EventType",
            }})
        if request.method == "GET" and path == "/scheduled_events":
            return httpx.Response(200, json={"collection": [], "pagination": {"count": 0}})
        if request.method == "POST" and path == "/webhook_subscriptions":
            return httpx.Response(201, json={"resource": {
                "uri": "https://api.calendly.com/webhook_subscriptions/SUB123",
                "state": "active",
            }})
        if request.method == "GET" and path == "/webhook_subscriptions":
            return httpx.Response(200, json={"collection": [{"uri": "https://api.calendly.com/webhook_subscriptions/SUB123"}]})
        if request.method == "DELETE" and path.startswith("/webhook_subscriptions/"):
            return httpx.Response(204)
        return httpx.Response(404, json={"title": "Resource Not Found", "message": "Unknown path"})

    def client(self) -> CalendlyClient:
        return CalendlyClient("cal_test_token", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_calendly():
    """Route every Calendly call made through the API to canned answers."""
    fake = FakeCalendly()
    app.dependency_overrides[get_calendly_client] = fake.client
    return fake
