from fastapi import APIRouter

router = APIRouter(tags=["Core"])


# GET /
# Gets: nothing
# Returns: basic API metadata and a map of key endpoints
# Example:
#   curl http://localhost:3000/
@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Tripdesk API - travel consultation bookings",
        "version": "1.0.0",
        "description": "Google sign-in, contact requests and Calendly scheduling for travel consultations",
        "endpoints": {
            "google_login": "/auth/google",
            "auth_status": "/auth/status",
            "contacts": "/api/contact",
            "calendly_webhook": "/calendly/webhook",
            "calendly_events": "/calendly/events",
            "calendly_stats": "/calendly/stats",
            "create_event": "/calendly/create-event",
            "user_login": "/user/login",
            "health": "/health",
            "metrics": "/metrics",
        },
        "features": [
            "Google sign-in with cookie sessions",
            "Contact form intake",
            "Calendly webhook reconciliation",
            "Single-use scheduling links",
        ],
    }
