"""
Main FastAPI application for the Lead Lifecycle Engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import register_exception_handlers
from .routes import dashboard, leads, scheduled, webhooks
from .services import Services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Lead Lifecycle Engine starting up...")
    services: Services = app.state.services
    await services.startup()
    logger.info("Lead Lifecycle Engine ready")
    yield
    logger.info("Lead Lifecycle Engine shutting down...")
    await services.shutdown()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings)

    app = FastAPI(
        title=settings.api_title,
        description="Scores call-ended events into leads, assigns sales reps, and dispatches follow-up calls.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.services = services or Services.from_settings(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)

    app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(scheduled.router, prefix="/api/v1", tags=["Scheduled"])
    app.include_router(dashboard.router, prefix="/api/v1", tags=["Dashboard"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health(request: Request):
        status = request.app.state.services.health()
        return {
            "status": "healthy" if all(status.values()) else "degraded",
            "services": status,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
