"""
Google sign-in.

GoogleOAuthClient speaks to Google's OAuth endpoints; parse_google_profile turns
whatever profile shape comes back into a NormalizedUser, or an error result.
"""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from tripdesk.config import config
from tripdesk.exceptions import UpstreamError, ValidationError
from tripdesk.logging_config import get_logger
from tripdesk.models import NormalizedUser

logger = get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
GOOGLE_SCOPES = ["openid", "email", "profile"]


@dataclass
class ProfileResult:
    """Outcome of parsing a provider profile: either a user or a validation error."""
    user: Optional[NormalizedUser] = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.user is not None


def _first_value(items: Any) -> Optional[str]:
    # Passport-style lists: [{"value": "..."}]
    if isinstance(items, list) and items:
        first = items[0]
        if isinstance(first, dict):
            return first.get("value")
    return None


def parse_google_profile(raw: Any) -> ProfileResult:
    """
    Map a Google profile to a NormalizedUser.

    Accepts the OpenID userinfo shape (sub/email/given_name/family_name/picture)
    and the Passport shape (id/emails/name.givenName/photos). Provider id, email
    and first name are required.
    """
    if not isinstance(raw, dict):
        return ProfileResult(error=ValidationError("Profile must be an object"))

    name = raw.get("name") if isinstance(raw.get("name"), dict) else {}

    provider_id = raw.get("sub") or raw.get("id")
    email = raw.get("email") or _first_value(raw.get("emails"))
    given_name = raw.get("given_name") or name.get("givenName")
    family_name = raw.get("family_name") or name.get("familyName")
    picture = raw.get("picture") or _first_value(raw.get("photos"))

    if not provider_id:
        return ProfileResult(error=ValidationError("Google ID missing from profile"))
    if not email:
        return ProfileResult(error=ValidationError("Email missing from profile"))
    if not given_name:
        return ProfileResult(error=ValidationError("First name missing from profile"))

    return ProfileResult(
        user=NormalizedUser(
            provider_id=str(provider_id),
            email=str(email).strip().lower(),
            given_name=str(given_name),
            family_name=family_name or None,
            picture=picture or None,
        )
    )


class GoogleOAuthClient:
    """Authorization-code flow against Google."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    def authorization_url(self, state: str) -> str:
        """URL the browser is sent to in order to start sign-in."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """Exchange an authorization code for tokens."""
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            try:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
            except httpx.HTTPError as e:
                raise UpstreamError(f"Google token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            logger.error("google_token_exchange_failed", status=response.status_code, body=response.text[:500])
            raise UpstreamError("Failed to exchange authorization code", upstream_status=response.status_code)

        tokens = response.json()
        if not tokens.get("access_token"):
            raise UpstreamError("Google did not return an access token")
        return tokens

    async def fetch_profile(self, access_token: str) -> dict:
        """Fetch the signed-in user's profile."""
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            try:
                response = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.HTTPError as e:
                raise UpstreamError(f"Google userinfo endpoint unreachable: {e}") from e

        if response.status_code != 200:
            logger.error("google_userinfo_failed", status=response.status_code)
            raise UpstreamError("Failed to get user info from Google", upstream_status=response.status_code)
        return response.json()


def get_google_client() -> GoogleOAuthClient:
    """Dependency: Google client built from the current configuration."""
    return GoogleOAuthClient(
        client_id=config.GOOGLE_CLIENT_ID,
        client_secret=config.GOOGLE_CLIENT_SECRET,
        redirect_uri=config.GOOGLE_CALLBACK_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
