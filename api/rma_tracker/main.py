# rma_tracker/main.py
# RMA Tracker - dock receiving, RMA reconciliation, inventory and shipout
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rma_tracker.database import Database
from rma_tracker.errors import register_error_handlers
from rma_tracker.logging_setup import setup_logging
from rma_tracker.settings import Settings, settings as default_settings

from rma_tracker.routers.customers import router as customers_router
from rma_tracker.routers.dock_receiving import router as dock_receiving_router
from rma_tracker.routers.inventory import router as inventory_router
from rma_tracker.routers.items import router as items_router
from rma_tracker.routers.locations import router as locations_router
from rma_tracker.routers.rma import router as rma_router
from rma_tracker.routers.shipout import router as shipout_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    """
    Build the API. ``db`` defaults to a handle built from settings; it is
    opened at startup and disposed at shutdown by the lifespan.
    """
    settings = settings or default_settings
    db = db or Database.from_settings(settings)

    # ---------------------------------------------------------
    # Lifespan: Database open/close
    # ---------------------------------------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        await db.open()
        logger.info("RMA Tracker started")
        yield
        await db.close()
        logger.info("RMA Tracker stopped")

    app = FastAPI(
        title="RMA Tracker API",
        version="1.0.0",
        description="Dock receiving, RMA reconciliation, inventory locations and shipout",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(rma_router)
    app.include_router(inventory_router)
    app.include_router(locations_router)
    app.include_router(dock_receiving_router)
    app.include_router(customers_router)
    app.include_router(items_router)
    app.include_router(shipout_router)

    @app.get("/health")
    async def health():
        """Liveness plus database connectivity."""
        return await app.state.db.check_health()

    return app


# ---------------------------------------------------------
# Module-level app for `uvicorn rma_tracker.main:app`
# ---------------------------------------------------------
setup_logging(default_settings)
app = create_app()
