"""
Calendly REST API client.

One request per call, no retries. Any non-2xx answer raises UpstreamError
with Calendly's status code and message.
"""

from datetime import datetime
from typing import Any, Optional

import httpx
from fastapi import Query

from tripdesk.config import config
from tripdesk.exceptions import UpstreamError, ValidationError
from tripdesk.logging_config import get_logger
from tripdesk.timeutils import isoformat_utc

logger = get_logger(__name__)

CALENDLY_TOKEN_URL = "https://auth.calendly.com/oauth/token"  # noqa: S105 - OAuth endpoint URL

# Preferred meeting length for programmatic bookings, in minutes
PREFERRED_MIN_DURATION = 15
PREFERRED_MAX_DURATION = 60


def token_hint(token: str) -> str:
    """Shorten a secret for log output."""
    if not token:
        return ""
    return token[:8] + "..."


def provider_event_id(uri: str) -> str:
    """Stable id of a Calendly resource: the last non-empty segment of its URI."""
    segments = [s for s in (uri or "").split("/") if s]
    return segments[-1] if segments else ""


def _is_preferred(event_type: dict) -> bool:
    duration = event_type.get("duration")
    return (
        bool(event_type.get("active"))
        and event_type.get("type") == "StandardEventType"
        and event_type.get("kind") == "solo"
        and not event_type.get("pooling_type")
        and isinstance(duration, (int, float))
        and PREFERRED_MIN_DURATION <= duration <= PREFERRED_MAX_DURATION
    )


def select_best_event_type(event_types: list[dict]) -> Optional[dict]:
    """
    Pick the event type to book against.

    First choice: active, standard, one-on-one, 15-60 minutes, shortest wins.
    Otherwise the first active entry, otherwise the first entry at all.
    """
    if not event_types:
        return None

    preferred = sorted(
        (et for et in event_types if _is_preferred(et)),
        key=lambda et: et["duration"],
    )
    if preferred:
        return preferred[0]

    for et in event_types:
        if et.get("active"):
            return et

    return event_types[0]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    if isinstance(body, dict):
        message = body.get("message") or body.get("title") or response.reason_phrase
        details = body.get("details")
        if isinstance(details, list) and details:
            parts = [d.get("message", "") for d in details if isinstance(d, dict)]
            parts = [p for p in parts if p]
            if parts:
                message = f"{message}: {'; '.join(parts)}"
        return message
    return response.reason_phrase


class CalendlyClient:
    """Thin async wrapper around the Calendly v2 API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.calendly.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path_or_url: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Optional[dict]:
        url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}{path_or_url}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            try:
                response = await client.request(method, url, headers=self.headers, params=params, json=json)
            except httpx.HTTPError as e:
                logger.error("calendly_request_failed", method=method, url=url, error=str(e))
                raise UpstreamError(f"Calendly unreachable: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "calendly_error_response",
                method=method,
                url=url,
                status=response.status_code,
                message=message,
                token=token_hint(self.access_token),
            )
            raise UpstreamError(message, upstream_status=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ----- Users & event types -----

    async def get_current_user(self) -> dict:
        """GET /users/me - returns the user resource."""
        data = await self._request("GET", "/users/me")
        resource = (data or {}).get("resource")
        if not resource or not resource.get("uri"):
            raise UpstreamError("Calendly did not return the current user")
        return resource

    async def list_event_types(self, user_uri: str, active: Optional[bool] = None) -> list[dict]:
        """GET /event_types for a user."""
        params = {"user": user_uri}
        if active is not None:
            params["active"] = "true" if active else "false"
        data = await self._request("GET", "/event_types", params=params)
        return (data or {}).get("collection", [])

    # ----- Scheduled events -----

    async def list_scheduled_events(
        self,
        user_uri: Optional[str] = None,
        count: Optional[int] = None,
        status: Optional[str] = None,
        min_start_time: Optional[datetime] = None,
        max_start_time: Optional[datetime] = None,
        page_token: Optional[str] = None,
    ) -> dict:
        """
        GET /scheduled_events.

        Resolves the current user when user_uri is omitted. Returns Calendly's
        {"collection": [...], "pagination": {...}} body unchanged.
        """
        if not user_uri:
            user_uri = (await self.get_current_user())["uri"]

        params = {
            "user": user_uri,
            "count": count,
            "status": status,
            "min_start_time": isoformat_utc(min_start_time),
            "max_start_time": isoformat_utc(max_start_time),
            "page_token": page_token,
        }
        return await self._request("GET", "/scheduled_events", params=params) or {}

    async def create_scheduling_link(self, event_type_uri: str, max_event_count: int = 1) -> dict:
        """POST /scheduling_links - a single-use booking URL bound to one event type."""
        data = await self._request(
            "POST",
            "/scheduling_links",
            json={
                "max_event_count": max_event_count,
                "owner": event_type_uri,
                "owner_type": "EventType",
            },
        )
        resource = (data or {}).get("resource") or {}
        if not resource.get("booking_url"):
            raise UpstreamError("Calendly did not return a booking URL")
        logger.info("calendly_scheduling_link_created", event_type=event_type_uri)
        return resource

    # ----- Webhook subscriptions -----

    async def create_webhook_subscription(
        self,
        url: str,
        events: list[str],
        organization: str,
        scope: str = "organization",
        user: Optional[str] = None,
    ) -> dict:
        """POST /webhook_subscriptions."""
        body = {
            "url": url,
            "events": events,
            "organization": organization,
            "scope": scope,
        }
        if user:
            body["user"] = user
        data = await self._request("POST", "/webhook_subscriptions", json=body)
        logger.info("calendly_webhook_subscription_created", url=url, events=events, scope=scope)
        return (data or {}).get("resource", data or {})

    async def list_webhook_subscriptions(
        self,
        organization: Optional[str] = None,
        scope: str = "organization",
        user: Optional[str] = None,
    ) -> dict:
        """GET /webhook_subscriptions. Organization defaults to the current user's."""
        if not organization:
            me = await self.get_current_user()
            organization = me.get("current_organization")
            if scope == "user" and not user:
                user = me["uri"]
        params = {"organization": organization, "scope": scope, "user": user}
        return await self._request("GET", "/webhook_subscriptions", params=params) or {}

    async def delete_webhook_subscription(self, uuid_or_uri: str) -> None:
        """DELETE /webhook_subscriptions/{uuid}. Accepts a bare uuid or the full URI."""
        uuid = provider_event_id(uuid_or_uri)
        if not uuid:
            raise ValidationError("Webhook subscription id required")
        await self._request("DELETE", f"/webhook_subscriptions/{uuid}")
        logger.info("calendly_webhook_subscription_deleted", uuid=uuid)

    # ----- OAuth -----

    async def exchange_code(self, code: str, client_id: str, client_secret: str, redirect_uri: str) -> str:
        """Exchange a Calendly OAuth authorization code for an access token."""
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            try:
                response = await client.post(
                    CALENDLY_TOKEN_URL,
                    data={
                        "grant_type": "authorization_code",
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "redirect_uri": redirect_uri,
                        "code": code,
                    },
                )
            except httpx.HTTPError as e:
                raise UpstreamError(f"Calendly token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            logger.error("calendly_token_exchange_failed", status=response.status_code)
            raise UpstreamError(_error_message(response), upstream_status=response.status_code)

        access_token = response.json().get("access_token")
        if not access_token:
            raise UpstreamError("Failed to get access token from Calendly")
        self.access_token = access_token
        return access_token


def get_calendly_client(
    token: Optional[str] = Query(None, description="Calendly access token; defaults to the server token"),
) -> CalendlyClient:
    """Dependency: client for the request's token, or the configured server token."""
    access_token = token or config.CALENDLY_ACCESS_TOKEN
    if not access_token:
        raise ValidationError("Calendly access token required")
    return CalendlyClient(
        access_token=access_token,
        base_url=config.CALENDLY_API_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
