"""Care Fayre Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carefayre.errors import (
    DependencyUnavailableError,
    InvalidInputError,
    MarketplaceError,
    NotAuthorizedError,
    NotFoundError,
    WrongStatusError,
)

from .config import get_settings
from .logging_config import get_logger
from .rate_limit import limiter
from .routes import (
    admin_router,
    bids_router,
    jobs_router,
    notifications_router,
    profiles_router,
    requests_router,
    timesheets_router,
)

logger = get_logger("carefayre.api")

API_PREFIX = "/api/v1"

# Most specific first
ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (WrongStatusError, status.HTTP_409_CONFLICT),
    (InvalidInputError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DependencyUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: MarketplaceError) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info(f"Starting Care Fayre Backend API (debug={settings.debug})")
    yield
    logger.info("Shutting down Care Fayre Backend API")


app = FastAPI(
    title="Care Fayre Backend API",
    description="Care marketplace: requests, bids, rate agreements, jobs and timesheets",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    code = status_for(exc)
    if code >= 500:
        logger.warning(f"{request.method} {request.url.path} | dependency failure: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(requests_router, prefix=API_PREFIX)
app.include_router(bids_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(timesheets_router, prefix=API_PREFIX)
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(profiles_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "carefayre-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Health check with a storage round trip."""
    from .database import get_marketplace

    db_status = "disconnected"
    try:
        get_marketplace(get_settings()).settings.get()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
    }
