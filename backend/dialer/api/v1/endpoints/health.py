"""
Health Check Endpoint
Liveness plus the state of the call-timeout watchdog's Redis backend
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from dialer.api.v1.dependencies import get_deadline_tracker
from dialer.domain.services.deadline_tracker import CallDeadlineTracker

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    deadlines: Optional[CallDeadlineTracker] = Depends(get_deadline_tracker)
) -> Dict[str, Any]:
    """
    Health check for Docker and monitoring systems.

    The API keeps serving without Redis (calls are just not timed out), so
    an unreachable tracker is reported but the status stays healthy.
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "service": "dialer-queue",
        "redis_enabled": deadlines is not None,
    }

    if deadlines is not None:
        try:
            health["pending_deadlines"] = await deadlines.pending_count()
        except Exception as e:
            health["deadline_tracker"] = f"error: {str(e)}"

    return health


@router.get("/", status_code=status.HTTP_200_OK)
async def root() -> Dict[str, str]:
    return {"message": "Outbound Call Queue API", "status": "running"}
