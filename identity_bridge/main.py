"""
Identity Bridge

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from identity_bridge.config import Settings, get_settings, static_config
from identity_bridge.database import async_session_maker, close_db, init_db
from identity_bridge.api.v1 import router as api_router
from identity_bridge.api.middleware.request_id import RequestIdMiddleware
from identity_bridge.kernel.configuration import (
    ConfigCache,
    OriginPolicy,
    PolicyCORSMiddleware,
    SqlConfigStore,
)
from identity_bridge.schemas.common import HealthResponse
from identity_bridge.services.legacy_client import LegacyIdentityClient
from identity_bridge.logging_config import configure_logging, get_logger

settings = get_settings()
logger = get_logger(__name__)


def build_components(app: FastAPI, settings: Settings) -> None:
    """Create the long-lived components and attach them to app.state."""
    config_cache = ConfigCache(
        SqlConfigStore(async_session_maker),
        ttl_seconds=settings.config_cache_ttl_seconds,
        refresh_interval_seconds=settings.config_refresh_interval_seconds,
        retry_backoff_seconds=settings.config_retry_backoff_seconds,
        static_values=static_config(settings),
    )
    app.state.config_cache = config_cache
    app.state.origin_policy.config = config_cache
    app.state.legacy_client = LegacyIdentityClient(
        config=config_cache,
        base_url=settings.legacy_api_url,
        services_secret=settings.legacy_services_secret,
        timeout=settings.legacy_timeout_seconds,
        check_retries=settings.legacy_check_retries,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    # Configure logging first
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    # Startup
    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    build_components(app, settings)
    await app.state.config_cache.start()
    logger.info("Configuration cache started (state=%s)", app.state.config_cache.state)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.config_cache.stop()
    await app.state.legacy_client.aclose()
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    description="""
    Identity Bridge

    Keeps a legacy identity store and a session-based local store in agreement.

    ## Features

    - **Sign-up / Sign-in**: Legacy-first reconciliation with transparent credential migration
    - **Social callback**: Links OAuth principals to legacy records
    - **Token verification**: Stateless session lookup for downstream services
    - **Configuration**: Database-backed settings behind a TTL cache
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# The policy reads from the config cache once the lifespan has built it;
# until then the fallback allow-list applies.
origin_policy = OriginPolicy(config=None, fallback_suffix=settings.fallback_trusted_suffix)
app.state.origin_policy = origin_policy

# Middleware order: add_middleware stacks innermost-first, so LAST added = OUTERMOST.
app.add_middleware(
    RequestIdMiddleware,
    slow_request_ms=settings.slow_request_ms,
    path_budgets={f"{settings.api_prefix}/verify": settings.slow_verify_ms},
)

# CORS last = outermost = wraps everything; every response gets CORS headers
app.add_middleware(
    PolicyCORSMiddleware,
    origin_policy=origin_policy,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """Return CORS headers for error responses from an allowed origin."""
    origin = request.headers.get("origin") or ""
    if not origin_policy.is_allowed(origin):
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


# Exception handlers (include CORS headers so 4xx/5xx responses are not blocked by browser)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Ensure 401/403/404 etc. responses have CORS headers."""
    headers = _cors_headers(request)
    if exc.headers:
        headers.update(exc.headers)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    content = {"detail": exc.detail}
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    headers = _cors_headers(request)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    content = {"detail": "Validation error", "errors": errors}
    if req_id:
        content["request_id"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    headers = _cors_headers(request)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    if settings.debug:
        content = {
            "detail": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=headers,
    )


# Health check endpoint
@app.get(f"{settings.api_prefix}/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    cache = getattr(request.app.state, "config_cache", None)
    return HealthResponse(
        status="ok",
        service=settings.project_name,
        version=settings.version,
        timestamp=datetime.now(timezone.utc),
        config_cache=cache.state if cache is not None else "cold",
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "endpoints": {
            "health": f"{settings.api_prefix}/health",
            "auth": f"{settings.api_prefix}/auth/*",
            "verify": f"{settings.api_prefix}/verify",
            "config": f"{settings.api_prefix}/config",
        },
    }


# Mount API routes
app.include_router(
    api_router,
    prefix=settings.api_prefix,
)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "identity_bridge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
