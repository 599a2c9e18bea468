"""Health routes - Service health, per-source health, alerts and conflicts."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from stablewatch.api.deps import get_health_monitor, get_service
from stablewatch.schemas.api import HealthResponse
from stablewatch.services.health_monitor import HealthMonitor
from stablewatch.services.stablecoin_service import StablecoinDataService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(response: Response, service: StablecoinDataService = Depends(get_service)):
    """
    Health check endpoint for load balancer and Docker health checks.

    Returns 503 when the service is unhealthy and has no data to serve.
    """
    status = service.get_health_status()
    if not status["healthy"] and service.snapshot is None:
        response.status_code = 503
    return HealthResponse(**status)


@router.get("/sources/{source_id}")
def source_health(source_id: str, monitor: HealthMonitor = Depends(get_health_monitor)):
    try:
        return monitor.get_source_health(source_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown data source: {source_id}")


@router.get("/alerts")
def alerts(
    level: Literal["info", "warning", "error", "critical"] = Query("info", description="Minimum alert level"),
    monitor: HealthMonitor = Depends(get_health_monitor),
):
    return monitor.get_health_alerts(level)


@router.get("/conflicts")
def conflicts(
    service: StablecoinDataService = Depends(get_service),
    monitor: HealthMonitor = Depends(get_health_monitor),
):
    """Conflict statistics plus the tallies of the latest cycle."""
    return {"metrics": monitor.get_conflict_metrics(), "latest_cycle": service.get_conflicts()}
