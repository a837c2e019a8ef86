# SiteTrack - Main Application
# FastAPI application factory and startup

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitetrack import __version__
from sitetrack.config import get_settings
from sitetrack.database import check_connection
from sitetrack.services.realtime import ConnectionManager


settings = get_settings()

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logging setup; a no-op when the host (uvicorn, pytest) already configured it."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Runs on startup and shutdown.
    """
    # Startup
    configure_logging()
    logger.info("Starting %s %s...", settings.app_name, __version__)

    # Verify database connection
    try:
        check_connection()
        logger.info("Database connection: OK")
    except Exception as e:
        logger.error("Database connection: FAILED - %s", e)
        # Keep serving in debug mode so the health check can report it
        if not settings.debug:
            raise

    yield

    # Shutdown
    logger.info("Shutting down %s...", settings.app_name)


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application. Each app owns its
    own realtime hub (app.state.hub), so connection registries and
    notification stacks are never shared between instances.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Employee attendance and live geolocation tracking",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Realtime hub shared by the HTTP routes and the socket route
    app.state.hub = ConnectionManager(stack_size=settings.notification_stack_size)

    # Include routers
    from sitetrack.routes import admin, auth, employee, realtime, super_admin
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(employee.router)
    app.include_router(super_admin.router)
    app.include_router(realtime.router)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint for monitoring."""
        try:
            check_connection()
            db_status = "healthy"
        except Exception as e:
            db_status = f"unhealthy: {e}"

        return {
            "status": "ok",
            "app": settings.app_name,
            "database": db_status,
        }

    @app.get("/api/config")
    def client_config():
        """Public client configuration (maps API key)."""
        return {"GOOGLE_MAPS_API_KEY": settings.maps_api_key}

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sitetrack.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
