"""Health check endpoints."""

from fastapi import APIRouter, Request

from txwatch.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "txwatch"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and engine info."""
    settings = get_settings()
    watcher = request.app.state.watcher
    return {
        "status": "healthy",
        "service": "txwatch",
        "version": "0.1.0",
        "config": settings.get_safe_dict(),
        "engine": {
            "active_watches": watcher.active_watches,
            "pending_transactions": len(watcher.store.pending_transactions()),
            "deposit_revision": watcher.store.revision,
            "refresh_pending": watcher.scheduler.pending,
        },
    }
