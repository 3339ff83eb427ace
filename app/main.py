"""Ovation Sync — FastAPI Application Entry Point.

Pulls customer surveys from the Ovation partner API into the relational store
on a fixed interval, and exposes health/status/manual-sync endpoints.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db, test_connection
from app.scheduler.jobs import start_scheduler, stop_scheduler
from app.api.sync_routes import router as sync_router
from app.sync.orchestrator import SyncOrchestrator
from app.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("Ovation sync starting up...")
    logger.info(f"Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    # Test connection first
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"Table creation failed: {e}")
    else:
        logger.error("Database NOT connected — syncs will fail")

    if not settings.company_id_list:
        logger.warning("OVATION_COMPANY_IDS is empty; survey listings will be unscoped")

    orchestrator = getattr(app.state, "orchestrator", None) or SyncOrchestrator()
    app.state.orchestrator = orchestrator
    if not IS_SERVERLESS:
        start_scheduler(orchestrator)
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    await orchestrator.close()
    logger.info("Ovation sync shut down")


app = FastAPI(
    title="Ovation Survey Sync",
    description="Incrementally pulls Ovation customer surveys into the relational store.",
    version=settings.service_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(sync_router)


@app.get("/", include_in_schema=False)
async def root():
    """Service index."""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "endpoints": ["/health", "/status", "/sync", "/sync-history"],
    }
