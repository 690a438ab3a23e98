"""Tests for Google sign-in and session endpoints."""

from urllib.parse import parse_qs, urlparse

import httpx

from tripdesk.identity import GoogleOAuthClient, get_google_client
from tripdesk.main import app
from tripdesk.models import NormalizedUser
from tripdesk.session import SessionIssuer

FRONTEND_URL = "http://frontend.test"


def _google_transport(profile=None, token_status=200):
    profile = profile or {
        "sub": "google-777",
        "email": "Traveller@Example.com",
        "given_name": "Tess",
        "family_name": "Rivera",
        "picture": "https://example.com/tess.png",
    }

    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "google-access", "token_type": "Bearer"})
        return httpx.Response(200, json=profile)

    return httpx.MockTransport(handler)


def _use_google(transport):
    app.dependency_overrides[get_google_client] = lambda: GoogleOAuthClient(
        "google-client-id", "google-client-secret", "http://testserver/auth/google/callback", transport=transport
    )


def test_status_without_session(client):
    assert client.get("/auth/status").json() == {"authenticated": False}


def test_status_with_cookie(client, session_token):
    client.cookies.set("jwt", session_token)

    body = client.get("/auth/status").json()
    assert body["authenticated"] is True
    assert body["user"] == {
        "email": "ana@example.com",
        "name": "Ana Lopez",
        "picture": "https://example.com/ana.png",
    }


def test_profile_requires_session(client):
    response = client.get("/auth/profile")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_profile_with_bearer_header(client, session_token):
    response = client.get("/auth/profile", headers={"Authorization": f"Bearer {session_token}"})

    assert response.status_code == 200
    assert response.json()["user_id"] == "google-123"


def test_cookie_wins_over_bearer_header(client, session_token):
    client.cookies.set("jwt", session_token)
    other = SessionIssuer(secret="test-secret").issue(
        NormalizedUser(provider_id="other", email="someone@example.com", given_name="Other")
    )

    body = client.get("/auth/verify", headers={"Authorization": f"Bearer {other}"}).json()
    assert body["valid"] is True
    assert body["user"]["email"] == "ana@example.com"


def test_logout_clears_cookie(client, session_token):
    client.cookies.set("jwt", session_token)

    response = client.post("/auth/logout")

    assert response.json() == {"message": "Logged out successfully"}
    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith("jwt=")
    assert "Max-Age=0" in set_cookie


def test_google_login_redirects_with_state(client):
    response = client.get("/auth/google", follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "accounts.google.com"
    state = parse_qs(location.query)["state"][0]
    assert client.cookies.get("oauth_state") == state


def test_google_callback_sets_session_and_redirects(client):
    _use_google(_google_transport())
    client.cookies.set("oauth_state", "state-abc")

    response = client.get("/auth/google/callback?code=xyz&state=state-abc", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == FRONTEND_URL
    token = client.cookies.get("jwt")
    assert token

    claims = SessionIssuer(secret="test-secret").verify(token)
    assert claims.subject == "google-777"
    assert claims.email == "traveller@example.com"


def test_google_callback_rejects_state_mismatch(client):
    _use_google(_google_transport())
    client.cookies.set("oauth_state", "state-abc")

    response = client.get("/auth/google/callback?code=xyz&state=forged", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND_URL}/?error=invalid_state"
    assert client.cookies.get("jwt") is None


def test_google_callback_with_incomplete_profile(client):
    _use_google(_google_transport(profile={"sub": "1", "email": "x@example.com"}))
    client.cookies.set("oauth_state", "s")

    response = client.get("/auth/google/callback?code=xyz&state=s", follow_redirects=False)

    assert response.headers["location"] == f"{FRONTEND_URL}/?error=invalid_profile"


def test_google_callback_token_exchange_failure(client):
    _use_google(_google_transport(token_status=400))
    client.cookies.set("oauth_state", "s")

    response = client.get("/auth/google/callback?code=bad&state=s", follow_redirects=False)

    assert response.headers["location"] == f"{FRONTEND_URL}/?error=provider_error"


def test_google_callback_denied(client):
    response = client.get("/auth/google/callback?error=access_denied", follow_redirects=False)
    assert response.headers["location"] == f"{FRONTEND_URL}/?error=access_denied"
