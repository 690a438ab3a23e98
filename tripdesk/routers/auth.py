import secrets
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from tripdesk.config import config
from tripdesk.exceptions import TripdeskError, UpstreamError
from tripdesk.identity import GoogleOAuthClient, get_google_client, parse_google_profile
from tripdesk.logging_config import logger
from tripdesk.models import SessionClaims
from tripdesk.session import (
    SessionIssuer,
    clear_session_cookie,
    get_optional_user,
    get_session_issuer,
    require_user,
    set_session_cookie,
)

router = APIRouter(prefix="/auth", tags=["Auth"])

OAUTH_STATE_COOKIE = "oauth_state"


def _frontend_redirect(error: Optional[str] = None) -> RedirectResponse:
    url = config.FRONTEND_URL
    if error:
        url = f"{url.rstrip('/')}/?{urlencode({'error': error})}"
    return RedirectResponse(url, status_code=302)


def _user_body(user: SessionClaims) -> dict:
    return {
        "user_id": user.subject,
        "email": user.email,
        "given_name": user.given_name,
        "family_name": user.family_name,
        "picture": user.picture,
    }


# GET /auth/google
# Gets: nothing
# Returns: 302 redirect to Google's consent screen (sets a short-lived state cookie)
# Example:
#   curl -i http://localhost:3000/auth/google
@router.get("/google")
async def google_login(google: GoogleOAuthClient = Depends(get_google_client)):
    """Start Google sign-in."""
    if not config.has_google_oauth():
        raise TripdeskError("Google sign-in is not configured")

    state = secrets.token_urlsafe(24)
    response = RedirectResponse(google.authorization_url(state), status_code=302)
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=600,
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
    )
    logger.info("google_login_started")
    return response


# GET /auth/google/callback?code=...&state=...
# Gets: query params code, state (or error) from Google
# Returns: 302 redirect to the frontend with the session cookie set, or to /?error=<reason>
@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    google: GoogleOAuthClient = Depends(get_google_client),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Finish Google sign-in and issue the session cookie."""
    if error:
        logger.warning("google_login_denied", error=error)
        return _frontend_redirect(error="access_denied")
    if not code:
        return _frontend_redirect(error="missing_code")

    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not state or not expected_state or not secrets.compare_digest(state, expected_state):
        logger.warning("google_login_state_mismatch")
        return _frontend_redirect(error="invalid_state")

    try:
        tokens = await google.exchange_code(code)
        raw_profile = await google.fetch_profile(tokens["access_token"])
    except UpstreamError as e:
        logger.error("google_login_failed", error=e.message, upstream_status=e.upstream_status)
        return _frontend_redirect(error="provider_error")

    result = parse_google_profile(raw_profile)
    if not result.ok:
        logger.warning("google_profile_rejected", error=result.error.message)
        return _frontend_redirect(error="invalid_profile")

    token = issuer.issue(result.user)
    response = _frontend_redirect()
    set_session_cookie(response, token)
    response.delete_cookie(OAUTH_STATE_COOKIE)

    logger.info("google_login_succeeded", user_id=result.user.provider_id)
    return response


# GET /auth/status
# Gets: session cookie or Authorization: Bearer header (optional)
# Returns: {authenticated: bool, user?: {email, name, picture}}
# Example:
#   curl -b 'jwt=<token>' http://localhost:3000/auth/status
@router.get("/status")
async def auth_status(user: Optional[SessionClaims] = Depends(get_optional_user)):
    """Report whether the caller holds a valid session."""
    if user is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "user": {
            "email": user.email,
            "name": user.display_name,
            "picture": user.picture,
        },
    }


# GET /auth/profile
# Gets: valid session
# Returns: the identity carried by the session token
@router.get("/profile")
async def auth_profile(user: SessionClaims = Depends(require_user)):
    return _user_body(user)


# GET /auth/verify
# Gets: valid session
# Returns: {valid: true, user}
@router.get("/verify")
async def auth_verify(user: SessionClaims = Depends(require_user)):
    return {"valid": True, "user": _user_body(user)}


# POST /auth/logout
# Gets: nothing
# Returns: {message} and clears the session cookie
# Example:
#   curl -X POST http://localhost:3000/auth/logout
@router.post("/logout")
async def logout():
    """Sign out by dropping the session cookie."""
    response = JSONResponse({"message": "Logged out successfully"})
    clear_session_cookie(response)
    return response
