from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from social_bridge.core.errors import StoreUnavailableError
from social_bridge.db import DatabaseSessionManager

router = APIRouter(prefix="/health", tags=["health"])


def get_db_manager(request: Request) -> DatabaseSessionManager:
    """Dependency to get the database manager from the FastAPI app state."""
    return request.app.state.db_manager


@router.get("/live")
async def liveness_check():
    """Liveness probe - indicates if the service is running."""
    return {"status": "alive", "service": "social-bridge"}


@router.get("/ready")
def readiness_check(
    db_manager: DatabaseSessionManager = Depends(get_db_manager),
):
    """Readiness probe - indicates if the store accepts queries."""
    try:
        db_manager.run("SELECT 1")
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database check failed: {exc}",
        ) from None
    return {"status": "ready", "service": "social-bridge", "checks": {"database": True}}
