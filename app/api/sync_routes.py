"""Ovation Sync — Sync API Routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.connectors.ovation.client import OvationAPIError
from app.core.logging import get_logger
from app.sync.orchestrator import SyncInProgressError, SyncOrchestrator

logger = get_logger("api.sync")

router = APIRouter(tags=["Sync"])


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Dependency — the process-wide orchestrator created at startup."""
    return request.app.state.orchestrator


@router.get("/health")
def health_check(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Healthy once a sync has succeeded within the health window."""
    health = orchestrator.get_health_status()
    return JSONResponse(
        status_code=200 if health.is_healthy else 503,
        content={
            "status": "healthy" if health.is_healthy else "unhealthy",
            "service": settings.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": health.model_dump(mode="json"),
        },
    )


@router.get("/status")
def get_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Detailed status: counters, store totals and token state."""
    return {"success": True, "data": orchestrator.get_detailed_status()}


@router.post("/sync")
async def trigger_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Run a sync now. 409 if one is already running."""
    logger.info("Manual sync triggered via API")
    try:
        result = await orchestrator.run_sync()
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except OvationAPIError as e:
        raise HTTPException(status_code=502, detail=f"Sync failed: {str(e)}")
    except Exception as e:
        logger.error(f"Manual sync failed: {e}")
        raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)}")
    return {"success": True, "message": "Sync completed successfully", "data": result}


@router.get("/sync-history")
def get_sync_history(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Recent runs plus the running totals."""
    return {"success": True, "data": orchestrator.get_sync_history()}
