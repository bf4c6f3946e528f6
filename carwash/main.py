"""
FastAPI Application

Main entry point for the Car Wash Customer Management API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog

from carwash.config import get_settings
from carwash.config.logging import configure_logging
from carwash.database.connection import close_database, get_session_factory, init_database
from carwash.exceptions import (
    CarwashError,
    InvalidArgumentError,
    NoWashesRemainingError,
    NotFoundError,
    PurgeIncompleteError,
    TransactionAbortedError,
    WeatherServiceError,
)
from carwash.members import (
    LoyaltyRepository,
    MemberStore,
    PrepaidRepository,
    SubscriptionRepository,
)
from carwash.serving.cache import close_redis, init_redis
from carwash.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from carwash.serving.api.routes import (
    analytics_router,
    health_router,
    kiosk_router,
    members_router,
    visits_router,
)
from carwash.visits.aggregation import VisitAggregator

settings = get_settings()
logger = structlog.get_logger(__name__)


def build_member_store(session_factory) -> MemberStore:
    return MemberStore(
        SubscriptionRepository(session_factory),
        LoyaltyRepository(session_factory),
        PrepaidRepository(session_factory),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Car Wash Customer Management API", environment=settings.app_env)

    await init_database()
    session_factory = get_session_factory()

    # The response cache is optional
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed, analytics cache disabled", error=str(e))

    store = build_member_store(session_factory)
    app.state.member_store = store
    try:
        await store.load()
    except Exception as e:
        logger.warning("Initial member load failed", error=str(e))

    if settings.visits.purge_on_startup:
        try:
            await VisitAggregator(session_factory).purge_older_than()
        except PurgeIncompleteError as e:
            logger.warning("Startup purge incomplete", failed_ids=e.result.failed_ids)

    yield

    logger.info("Shutting down...")
    store.clear()
    await close_redis()
    await close_database()


app = FastAPI(
    title="Car Wash Customer Management API",
    description="Members, kiosk visit logging and visit analytics for a car wash",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.security.rate_limit_requests,
    window_seconds=settings.security.rate_limit_window_seconds,
)


# =============================================================================
# ERROR MAPPING
# =============================================================================

_STATUS_CODES = (
    (InvalidArgumentError, 422),
    (NotFoundError, 404),
    (NoWashesRemainingError, 409),
    (TransactionAbortedError, 503),
    (WeatherServiceError, 502),
)


@app.exception_handler(CarwashError)
async def carwash_error_handler(request: Request, exc: CarwashError) -> JSONResponse:
    if isinstance(exc, PurgeIncompleteError):
        logger.error("Purge incomplete", failed_ids=exc.result.failed_ids)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "result": exc.result.model_dump()},
        )

    code = 500
    for error_type, error_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            code = error_code
            break

    logger.warning("Request error", path=request.url.path, status_code=code, error=str(exc))
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)},
    )


app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(members_router, prefix="/api/v1/members", tags=["Members"])
app.include_router(visits_router, prefix="/api/v1/visits", tags=["Visits"])
app.include_router(kiosk_router, prefix="/api/v1/kiosk", tags=["Kiosk"])
app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Car Wash Customer Management API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
