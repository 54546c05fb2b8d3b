"""FastAPI application entry point."""
import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import guilds, health, oauth, users
from core.config import get_settings
from core.context import ServiceContext
from core.discord import create_http_client
from services.exceptions import (
    CrossIdentityWriteRejectedError,
    InvalidCredentialError,
    InvalidResponseShapeError,
    LocationServiceError,
    MalformedCredentialHeaderError,
    UpstreamUnavailableError,
)
from tasks.nearby_notifications import LoggingNotifier, run_nearby_check
from tasks.periodic import run_periodically

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[LocationServiceError], int] = {
    MalformedCredentialHeaderError: status.HTTP_401_UNAUTHORIZED,
    InvalidCredentialError: status.HTTP_401_UNAUTHORIZED,
    CrossIdentityWriteRejectedError: status.HTTP_403_FORBIDDEN,
    InvalidResponseShapeError: status.HTTP_502_BAD_GATEWAY,
    UpstreamUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: wire the service graph around a shared, time-bounded Discord client
    http_client = create_http_client(
        app_settings.discord_api_url, app_settings.discord_timeout_seconds,
    )
    context = ServiceContext.build(app_settings, http_client=http_client)
    app.state.context = context

    # Startup: background jobs
    background: list[asyncio.Task] = []
    if context.snapshot_store is not None:
        background.append(asyncio.create_task(
            run_periodically("persist", app_settings.persist_interval_seconds, context.persist),
        ))
    if app_settings.nearby_check_enabled:
        notifier = LoggingNotifier()
        background.append(asyncio.create_task(
            run_periodically(
                "nearby_check",
                app_settings.nearby_check_interval_seconds,
                lambda: run_nearby_check(context.store, context.nearby, notifier),
            ),
        ))
    app.state.background_tasks = background

    yield

    # Shutdown: stop jobs, flush the population, close Discord client
    for task in background:
        task.cancel()
    for task in background:
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await context.persist()
    await context.aclose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path and status of every request (never headers or bodies)."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and log the outcome."""
        response = await call_next(request)
        logger.info(
            "request method=%s path=%s status=%s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response


app_settings = get_settings()

app = FastAPI(
    title="Community Map API",
    description="Approximate locations of people you share a Discord server with.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(LocationServiceError)
async def location_service_exception_handler(
    _request: Request, exc: LocationServiceError,
) -> JSONResponse:
    """Translate service errors into HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    headers = (
        {"WWW-Authenticate": "Bearer"}
        if status_code == status.HTTP_401_UNAUTHORIZED
        else None
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message},
        headers=headers,
    )


app.add_middleware(RequestLoggingMiddleware)

# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(guilds.router)
app.include_router(oauth.router)
