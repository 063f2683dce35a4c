"""
Signature Workflow Service - Main FastAPI Application

Entry point for the API: middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config.settings import Settings, settings as default_settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, get_database, health_check
from .scheduler.expiration_scheduler import ExpirationScheduler
from .services.container import ServiceContainer
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        - Reports configuration problems
        - Builds the service container (unless one was injected)
        - Creates MongoDB indexes
        - Starts the expiration scheduler when enabled

    Shutdown:
        - Stops the scheduler
        - Closes the MongoDB connection it opened
    """
    config: Settings = app.state.config
    logger.info("Starting Signature Workflow Service...")

    for problem in config.validate_configuration():
        logger.error(f"Configuration problem: {problem}")

    owns_connection = app.state.container is None
    if owns_connection:
        app.state.container = ServiceContainer.build(get_database(config), config)
    container: ServiceContainer = app.state.container

    try:
        create_indexes(container.db)
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")

    scheduler: Optional[ExpirationScheduler] = None
    if config.scheduler_enabled:
        try:
            scheduler = ExpirationScheduler(
                container.expirations, config.expiration_check_interval_minutes
            )
            scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start expiration scheduler: {e}")
            scheduler = None

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    if scheduler:
        scheduler.stop()
    if owns_connection:
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    container: Optional[ServiceContainer] = None,
    config: Optional[Settings] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Prebuilt services (tests pass one over mongomock); when
            omitted the container is built against MongoDB at startup
        config: Settings, defaults to the container's or the environment's

    Returns:
        Configured FastAPI application instance
    """
    config = config or (container.config if container else default_settings)
    application = FastAPI(
        title="Signature Workflow Service",
        description="Multi-party document signing: requests, signers, expirations and bulk operations",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if config.debug else None,
        redoc_url="/api/redoc" if config.debug else None,
        openapi_url="/api/openapi.json" if config.debug else None,
    )
    application.state.config = config
    application.state.container = container

    _configure_middleware(application, config)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI, config: Settings) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = config.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else config.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    def health():
        """Application health including database connectivity"""
        container: Optional[ServiceContainer] = app.state.container
        mongo_health = health_check(container.db) if container else {"status": "unavailable"}
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": __version__,
            "environment": app.state.config.environment,
            "mongo": mongo_health
        }

    @app.get("/", tags=["Health"])
    def root():
        """Root endpoint with API information."""
        return {
            "service": "Signature Workflow Service",
            "version": __version__,
            "docs": "/api/docs" if app.state.config.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
