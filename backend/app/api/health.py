"""Liveness and readiness probes."""

from fastapi import APIRouter, Depends, Response, status

from backend.app.api.integration import get_integration_aggregator
from backend.app.services.integration_aggregator import IntegrationAggregator

router = APIRouter()


@router.get("/health")
async def health_check():
    """Process is up. No dependencies are touched."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check(
    response: Response,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
):
    """
    Ready when the database answers. Responds 503 with the failing check otherwise.
    """
    checks = {}
    try:
        await aggregator.ping()
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"failed: {e}"

    ready = all(result == "ok" for result in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "not_ready", "checks": checks}
