"""
FastAPI Application Entry Point
"""
import os
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from leadflow.api.v1.routes import api_router
from leadflow.core.config import get_settings
from leadflow.core.logging_config import configure_logging

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates record store and workflow configuration
    - Builds the engine service graph

    Shutdown:
    - Stops realtime subscriptions if any were opened
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting Lead Lifecycle Engine...")

    environment = os.getenv("ENVIRONMENT", "development")
    strict_validation = environment == "production"

    try:
        from leadflow.core.validation import validate_config_on_startup
        validate_config_on_startup(strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        else:
            logger.warning(f"Configuration warnings (non-fatal in {environment}): {e}")

    from leadflow.api.v1.dependencies import get_engine
    engine = get_engine()
    logger.info(f"Engine ready (store: {type(engine.store).__name__}, workflows enabled: {engine.workflows.enabled})")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down Lead Lifecycle Engine...")

    try:
        from leadflow.infrastructure.storage.record_store import SupabaseRecordStore
        if isinstance(engine.store, SupabaseRecordStore):
            await engine.store.stop_realtime()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Lead Lifecycle Engine shutdown complete")


app = FastAPI(
    title="Lead Lifecycle Engine",
    description="Lead status automation, follow-up tasks, SLA indicators and the notification inbox",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# MULTI-TENANT: Enabled
from leadflow.core.tenant_middleware import TenantMiddleware
app.add_middleware(TenantMiddleware)

# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": "Lead Lifecycle Engine API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic health status and the wired record store.
    """
    health = {"status": "healthy"}

    try:
        from leadflow.api.v1.dependencies import get_engine
        engine = get_engine()
        health["record_store"] = type(engine.store).__name__
        health["workflows_enabled"] = engine.workflows.enabled
    except Exception as e:
        health["engine"] = f"error: {str(e)}"

    return health


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
