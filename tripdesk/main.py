"""Main FastAPI application."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tripdesk.config import config
from tripdesk.database import init_db
from tripdesk.exceptions import TripdeskError, UpstreamError, error_body
from tripdesk.logging_config import logger
from tripdesk.metrics import api_request_duration, api_requests_total
from tripdesk.sample_store import InMemorySampleEventStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup
    logger.info("application_starting", version="1.0.0")
    init_db()
    logger.info("database_initialized")
    logger.info("google_oauth_configured", configured=config.has_google_oauth())
    logger.info("calendly_configured", token=config.has_calendly_token(), oauth=config.has_calendly_oauth())

    yield

    # Shutdown
    logger.info("application_shutting_down")


app = FastAPI(
    title="Tripdesk API",
    description="Travel consultation bookings: Google sign-in, contacts and Calendly scheduling",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.sample_store = InMemorySampleEventStore()

# Add CORS middleware; credentials are required for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    api_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    api_request_duration.observe(time.perf_counter() - start)
    return response


@app.exception_handler(TripdeskError)
async def tripdesk_error_handler(request: Request, exc: TripdeskError):
    if isinstance(exc, UpstreamError):
        logger.error("upstream_error", path=request.url.path, error=exc.message, upstream_status=exc.upstream_status)
    elif exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
    return JSONResponse(error_body(exc.message), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    logger.info("request_invalid", path=request.url.path, error=message)
    return JSONResponse(error_body(message), status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(error_body("Internal server error"), status_code=500)


# Include routers
from tripdesk.health import router as health_router  # noqa: E402
from tripdesk.routers.auth import router as auth_router  # noqa: E402
from tripdesk.routers.calendly import router as calendly_router  # noqa: E402
from tripdesk.routers.contact import router as contact_router  # noqa: E402
from tripdesk.routers.core import router as core_router  # noqa: E402
from tripdesk.routers.users import router as users_router  # noqa: E402

app.include_router(health_router)
app.include_router(core_router)
app.include_router(auth_router)
app.include_router(calendly_router)
app.include_router(contact_router)
app.include_router(users_router)
