"""
Health check and monitoring endpoints for production.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tripdesk.config import config
from tripdesk.database import check_db
from tripdesk.logging_config import logger

router = APIRouter(tags=["Health & Monitoring"])

SERVICE_NAME = "tripdesk"
SERVICE_VERSION = "1.0.0"


# GET /health
# Gets: nothing
# Returns: {status, service, version}
# Example:
#   curl http://localhost:3000/health
@router.get("/health")
async def health_check():
    """
    Basic health check - returns 200 if service is running.
    Use this for basic liveness probes.
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


# GET /health/ready
# Gets: nothing
# Returns: dependency readiness checks; 200 when ready, 503 otherwise
# Example:
#   curl http://localhost:3000/health/ready
@router.get("/health/ready")
async def readiness_check():
    """
    Readiness check - verifies the database answers.
    Google and Calendly credentials are reported but optional.
    """
    checks = {
        "database": False,
        "google_oauth": config.has_google_oauth() or "not_configured",
        "calendly": config.has_calendly_token() or "not_configured",
        "ready": False,
    }

    try:
        check_db()
        checks["database"] = True
        logger.debug("readiness_check_database", status="ok")
    except Exception as e:
        logger.warning("readiness_check_database", status="error", error=str(e))

    checks["ready"] = checks["database"] is True

    status_code = 200 if checks["ready"] else 503
    return JSONResponse(checks, status_code=status_code)


# GET /health/info
# Gets: nothing
# Returns: service configuration summary
# Example:
#   curl http://localhost:3000/health/info
@router.get("/health/info")
async def system_info():
    """
    System information and configuration status.
    """
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "configuration": {
            "google_oauth_configured": config.has_google_oauth(),
            "calendly_token_configured": config.has_calendly_token(),
            "calendly_oauth_configured": config.has_calendly_oauth(),
            "database_backend": config.DATABASE_URL.split(":", 1)[0],
            "debug_mode": config.DEBUG,
        },
        "features": {
            "google_sign_in": config.has_google_oauth(),
            "calendly_webhooks": True,
            "programmatic_scheduling": config.has_calendly_token(),
            "local_accounts": True,
        },
    }


# GET /metrics
# Gets: nothing
# Returns: Prometheus text exposition
# Example:
#   curl http://localhost:3000/metrics
@router.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
