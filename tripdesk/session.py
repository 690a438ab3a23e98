"""
Session tokens.
- Issue and verify signed JWTs carrying the user's identity
- Pull the token from the session cookie or an Authorization: Bearer header
- FastAPI dependencies for optional and required authentication
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from fastapi import Depends, Request, Response
from jose import ExpiredSignatureError, JWTError, jwt

from tripdesk.config import config
from tripdesk.exceptions import AuthError
from tripdesk.logging_config import get_logger
from tripdesk.models import NormalizedUser, SessionClaims

logger = get_logger(__name__)


class SessionIssuer:
    """Mints and verifies session tokens signed with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_hours: int = 24):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_hours = expires_hours

    def issue(self, user: Union[NormalizedUser, SessionClaims], now: Optional[datetime] = None) -> str:
        """Create a signed token for the given identity."""
        now = now or datetime.now(timezone.utc)
        subject = user.provider_id if isinstance(user, NormalizedUser) else user.subject
        claims = {
            "sub": subject,
            "email": user.email,
            "given_name": user.given_name,
            "family_name": user.family_name,
            "picture": user.picture,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=self.expires_hours)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[SessionClaims]:
        """
        Decode and check a token.

        Returns the claims, or None when the token is expired, tampered with or
        malformed. Never raises for a bad token.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.info("session_token_rejected", reason="expired")
            return None
        except JWTError as e:
            logger.warning("session_token_rejected", reason="invalid", error=str(e))
            return None

        if not payload.get("sub") or not payload.get("email"):
            logger.warning("session_token_rejected", reason="missing_claims")
            return None

        return SessionClaims(
            subject=payload["sub"],
            email=payload["email"],
            given_name=payload.get("given_name") or "",
            family_name=payload.get("family_name"),
            picture=payload.get("picture"),
        )


def extract_token(request: Request) -> Optional[str]:
    """Session cookie first, then the Authorization: Bearer header."""
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None


def get_session_issuer() -> SessionIssuer:
    """Dependency: issuer built from the current configuration."""
    return SessionIssuer(
        secret=config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
        expires_hours=config.JWT_EXPIRES_HOURS,
    )


async def get_optional_user(
    request: Request,
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> Optional[SessionClaims]:
    """Dependency: the caller's claims, or None when unauthenticated."""
    token = extract_token(request)
    if not token:
        return None
    return issuer.verify(token)


async def require_user(
    user: Optional[SessionClaims] = Depends(get_optional_user),
) -> SessionClaims:
    """
    Dependency for protected endpoints.

    Usage:
        @router.post("/protected")
        async def protected_route(user: SessionClaims = Depends(require_user)):
            return {"email": user.email}
    """
    if user is None:
        raise AuthError("Not authenticated")
    return user


def set_session_cookie(response: Response, token: str) -> None:
    """Attach the session token as an httpOnly cookie."""
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=token,
        max_age=config.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(config.SESSION_COOKIE_NAME)
