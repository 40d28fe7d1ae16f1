"""
FastAPI Production Application

Main entry point for the Retail Warehouse Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import close_database, init_database
from src.serving.api import create_api_app

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Retail Warehouse Analytics API", environment=settings.app_env)
    await init_database()

    yield

    logger.info("Shutting down...")
    await close_database()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)
