"""Source routes - Registered adapters and their capabilities."""

from fastapi import APIRouter, Depends

from stablewatch.api.deps import get_service
from stablewatch.schemas.api import DataSourceOut
from stablewatch.services.stablecoin_service import StablecoinDataService

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=list[DataSourceOut])
def list_sources(service: StablecoinDataService = Depends(get_service)):
    """Every registered source with its effective priority and health flag."""
    return [DataSourceOut(**s) for s in service.get_data_sources()]
