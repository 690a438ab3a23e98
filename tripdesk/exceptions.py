"""
Error taxonomy shared by services and routers.

Services raise these; the app's exception handlers turn them into
{"success": false, "error": message} bodies with the matching status code.
"""

from typing import Optional


class TripdeskError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TripdeskError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(TripdeskError):
    """Requested record does not exist."""

    status_code = 404


class AuthError(TripdeskError):
    """Missing, invalid or expired session."""

    status_code = 401


class UpstreamError(TripdeskError):
    """A third-party API (Calendly, Google) answered with an error or was unreachable."""

    status_code = 500

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


def error_body(message: str) -> dict:
    """Uniform failure payload."""
    return {"success": False, "error": message}
