"""Refresh routes - Trigger a refresh cycle on demand."""

from fastapi import APIRouter, Depends

from stablewatch.api.deps import get_service
from stablewatch.core.logging import get_logger
from stablewatch.schemas.api import RefreshResponse
from stablewatch.services.stablecoin_service import StablecoinDataService

router = APIRouter(prefix="/refresh", tags=["refresh"])
log = get_logger("refresh_routes")


@router.post("", response_model=RefreshResponse)
async def trigger_refresh(service: StablecoinDataService = Depends(get_service)):
    """
    Run a refresh cycle now and return its result.

    Returns success=false with "refresh already in progress" when a cycle
    is already running.
    """
    log.info("Refresh triggered via API")
    return RefreshResponse(**await service.refresh_data())
