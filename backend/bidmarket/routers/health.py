"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from bidmarket.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check (no marketplace call)."""
    return {
        "status": "ok",
        "service": "bidmarket",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: can we reach the marketplace API?

    Returns 200 OK only if the category tree can be fetched.
    """
    checks = {"service": "ok", "marketplace": "unknown"}
    overall_healthy = True

    try:
        await request.app.state.marketplace.list_categories()
        checks["marketplace"] = "ok"
    except Exception as e:
        checks["marketplace"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "bidmarket",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
