"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers.
"""
import logging
import os
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from . import __version__
from .core.config import settings
from .core.logging_config import configure_logging

# Import routers
from .api.routers import imports, tables

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    # Startup: Initialize metadata tables
    try:
        from .db.metadata import create_metadata_tables

        logger.info("Initializing database tables...")
        create_metadata_tables()
        logger.info("All database tables initialized successfully")
    except Exception as e:
        logger.exception("Failed to initialize database tables: %s", e)
        raise  # Re-raise to prevent app from starting with broken database

    yield  # Application runs here


# Initialize FastAPI application
app = FastAPI(
    title="Gridbase API",
    version=__version__,
    description="Bulk CSV import into typed tables with schema reconciliation",
    lifespan=lifespan
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(tables.router)
app.include_router(imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Gridbase API",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "gridbase-api"
    }
