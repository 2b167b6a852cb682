"""
Lot Ledger Engine API - Main Application.

FastAPI application with CORS enabled for frontend communication.
The engine is built from environment settings at startup and shared by all
requests through `app.state`.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.logging_config import setup_logging
from repositories.config import load_settings
from services.engine import Engine, build_engine

logger = logging.getLogger(__name__)


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Pre-built engine (tests pass one); built from the environment otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "engine", None) is None:
            settings = load_settings()
            setup_logging(settings)
            app.state.engine = build_engine(settings)
        logger.info("API started", extra={"version": __version__})
        yield

    app = FastAPI(
        title="Lot Ledger Engine API",
        description="Lot allocation, sale finalization and compliance ledger for second-hand game stock",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Configure CORS - Allow all origins for development
    # TODO: Restrict origins once the admin frontend has a fixed host
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status, version and whether external sync is configured.
        """
        current: Optional[Engine] = getattr(app.state, "engine", None)
        return {
            "status": "healthy" if current is not None else "starting",
            "version": __version__,
            "service": "lot-ledger-engine-api",
            "sync_enabled": bool(current and current.sync.enabled),
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Lot Ledger Engine API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    from api.routers import ledger, lots, sales, sync

    app.include_router(lots.router, prefix="/api/v1", tags=["Lots"])
    app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
    app.include_router(ledger.router, prefix="/api/v1", tags=["Ledger"])
    app.include_router(sync.router, prefix="/api/v1", tags=["Sync"])

    return app


app = create_app()
