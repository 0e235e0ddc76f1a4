"""
FastAPI Application

HTTP adapter over the specification engine: comparisons, effective
attribute listings, spec writes and collection freeze control.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from vehicle_specs.config import get_settings
from vehicle_specs.config.logging import configure_logging
from vehicle_specs.database.connection import init_database, close_database
from vehicle_specs.serving.api import (
    RequestLoggingMiddleware,
    build_services,
    register_exception_handlers,
)
from vehicle_specs.serving.api.routes import (
    attributes_router,
    collections_router,
    editions_router,
    health_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting vehicle specification API", environment=settings.app_env)

    await init_database(create_schema=settings.is_development)
    app.state.services = build_services()

    yield

    logger.info("Shutting down...")
    await close_database()


def create_app() -> FastAPI:
    """Build the application; tests attach services and a database themselves."""
    application = FastAPI(
        title="Vehicle Specification API",
        description="Attribute resolution, comparison and snapshot service for vehicle specifications",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(GZipMiddleware, minimum_size=1000)
    application.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(application)

    application.include_router(health_router, prefix="/api/v1", tags=["Health"])
    application.include_router(attributes_router, prefix="/api/v1/attributes", tags=["Attributes"])
    application.include_router(editions_router, prefix="/api/v1/editions", tags=["Editions"])
    application.include_router(collections_router, prefix="/api/v1/collections", tags=["Collections"])

    @application.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Vehicle Specification API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
