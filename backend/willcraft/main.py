"""
Willcraft - FastAPI Application

Main entry point for the backend API.
Provides endpoints for wills, the guided interview, billing and webhooks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from willcraft.config.settings import settings
from willcraft.infrastructure.exceptions import (
    WillcraftError,
    UpstreamServiceError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Willcraft backend starting in {settings.environment} mode...")

    if settings.database_url:
        try:
            from willcraft.infrastructure.db.database import init_db
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")
    else:
        logger.warning("DATABASE_URL is not set; persistence endpoints will answer 503")

    if not settings.stripe_enabled:
        logger.warning("STRIPE_SECRET_KEY is not set; billing endpoints will answer 503")

    yield

    if settings.database_url:
        try:
            from willcraft.infrastructure.db.database import close_db
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.warning(f"Database shutdown error: {e}")

    logger.info("Willcraft backend shutting down...")


app = FastAPI(
    title="Willcraft",
    description="Guided last will and testament builder",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render request body violations in the same envelope as domain validation."""
    fields = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        fields.setdefault(location or "body", []).append(error.get("msg", "Invalid value"))

    error = ValidationError("Request validation failed", fields=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(UpstreamServiceError)
async def upstream_error_handler(request: Request, exc: UpstreamServiceError):
    """Handle payment provider failures."""
    logger.error(
        f"Upstream failure on {request.method} {request.url.path}: "
        f"{exc.message} {exc.details} ({exc.original_error!r})"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(WillcraftError)
async def willcraft_error_handler(request: Request, exc: WillcraftError):
    """Handle all application errors with their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "willcraft"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Willcraft API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from willcraft.api.routes import wills, billing, webhooks, account  # noqa: E402

app.include_router(wills.router, prefix="/api", tags=["Wills"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(account.router, prefix="/api", tags=["Account"])
