"""Metrics routes - Market totals and the display view model."""

from fastapi import APIRouter, Depends

from stablewatch.api.deps import get_service
from stablewatch.schemas.api import MetricsResponse
from stablewatch.services.stablecoin_service import StablecoinDataService
from stablewatch.services.view_model import ViewModel

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics(service: StablecoinDataService = Depends(get_service)):
    """Combined totals plus the stablecoin and tokenized-asset segments."""
    return MetricsResponse(
        combined=service.get_market_metrics(),
        stablecoin=service.get_stablecoin_metrics(),
        tokenized_asset=service.get_tokenized_asset_metrics(),
    )


@router.get("/view", response_model=ViewModel)
def get_view(service: StablecoinDataService = Depends(get_service)):
    return service.get_view_model()
