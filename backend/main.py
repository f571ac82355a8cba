"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import sync, time_entries
from config import settings
from database import create_tables, get_engine
from logging_config import setup_logging
from services.sync_service import HarvestSyncService

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the long-lived sync service; close it on shutdown."""
    engine = get_engine()
    try:
        await create_tables(engine)
    except Exception:
        logger.warning("Table creation failed on startup", exc_info=True)

    service = HarvestSyncService(engine)
    app.state.sync_service = service

    # Build the connector eagerly so the first sync starts with warm caches
    if settings.HARVEST_ACCESS_TOKEN and settings.HARVEST_ACCOUNT_ID:
        try:
            await service.get_connector()
        except Exception:
            logger.warning("Harvest connector initialization failed on startup", exc_info=True)
    else:
        logger.info("Harvest credentials not configured; sync requests will be rejected")

    try:
        yield
    finally:
        await service.aclose()
        await engine.dispose()


app = FastAPI(
    title="Harvest Sync",
    description="Bounded, retrying sync of Harvest time entries into a local database",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync.router)
app.include_router(time_entries.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
