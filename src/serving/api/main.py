"""
FastAPI Application Factory

Creates and configures the warehouse analytics API.
"""

from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from src.config import get_settings
from src.serving.api.middleware import RequestLoggingMiddleware
from src.serving.api.routes import analytics_router, health_router

settings = get_settings()


def create_api_app(lifespan: Optional[Callable] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Optional lifespan context manager (database setup/teardown)

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Retail Warehouse Analytics API",
        description="Read-only access to the retail sales star schema",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint"""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
        }

    return app
