"""Platform routes - Per-chain market cap roll-ups."""

from fastapi import APIRouter, Depends

from stablewatch.api.deps import get_service
from stablewatch.schemas.api import PlatformListResponse
from stablewatch.services.stablecoin_service import StablecoinDataService

router = APIRouter(prefix="/platforms", tags=["platforms"])


@router.get("", response_model=PlatformListResponse)
def list_platforms(service: StablecoinDataService = Depends(get_service)):
    platforms = service.get_platform_data()
    return PlatformListResponse(total_count=len(platforms), data=platforms)
