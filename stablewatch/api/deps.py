"""API dependencies"""

from fastapi import Request

from stablewatch.services.health_monitor import HealthMonitor
from stablewatch.services.stablecoin_service import StablecoinDataService


def get_service(request: Request) -> StablecoinDataService:
    """The service instance created during application startup."""
    return request.app.state.service


def get_health_monitor(request: Request) -> HealthMonitor:
    return request.app.state.service.health_monitor
