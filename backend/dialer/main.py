"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dialer.api.v1.endpoints import health
from dialer.api.v1.routes import api_router
from dialer.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates provider configuration (fatal only in production)

    Shutdown:
    - Closes the voice provider HTTP client
    - Closes the deadline tracker's Redis connection
    """
    logger.info("Starting Outbound Call Queue...")

    environment = get_settings().environment
    strict_validation = environment == "production"

    try:
        from dialer.core.validation import validate_providers_on_startup
        validate_providers_on_startup(strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Configuration warnings (non-fatal in {environment}): {e}")

    logger.info("Outbound Call Queue started successfully")

    yield

    logger.info("Shutting down Outbound Call Queue...")

    from dialer.api.v1.dependencies import get_deadline_tracker, get_voice_gateway

    try:
        await get_voice_gateway().close()
        tracker = get_deadline_tracker()
        if tracker is not None:
            await tracker.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Outbound Call Queue shutdown complete")


app = FastAPI(
    title="Outbound Call Queue",
    description="Sequential AI outbound calling for CRM lead lists",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(api_router, prefix=get_settings().api_prefix)
