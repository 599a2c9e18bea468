"""Stablecoin routes - Merged assets from the latest snapshot."""

import time
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stablewatch.api.deps import get_service
from stablewatch.schemas.aggregated import STABLECOIN, TOKENIZED_ASSET, AggregatedAsset
from stablewatch.schemas.api import StablecoinListResponse
from stablewatch.services.stablecoin_service import StablecoinDataService

router = APIRouter(prefix="/stablecoins", tags=["stablecoins"])

CATEGORY_FILTERS = {"stablecoin": STABLECOIN, "tokenized": TOKENIZED_ASSET}


@router.get("", response_model=StablecoinListResponse)
def list_stablecoins(
    category: Optional[Literal["stablecoin", "tokenized"]] = Query(None, description="Filter by asset category"),
    limit: int = Query(100, ge=1, le=1000, description="Number of assets to return (max 1000)"),
    offset: int = Query(0, ge=0, description="Number of assets to skip"),
    service: StablecoinDataService = Depends(get_service),
):
    """
    Get merged stablecoins, stablecoins first then by market cap.

    Includes request metadata (request_id, latency_ms).
    """
    start = time.perf_counter()
    assets = service.get_stablecoins()
    if category:
        assets = [a for a in assets if a.asset_category == CATEGORY_FILTERS[category]]

    return StablecoinListResponse(
        request_id=str(uuid.uuid4()),
        api_latency_ms=int((time.perf_counter() - start) * 1000),
        total_count=len(assets),
        data=assets[offset : offset + limit],
    )


@router.get("/{identifier}", response_model=AggregatedAsset)
def get_stablecoin(identifier: str, service: StablecoinDataService = Depends(get_service)):
    """Look up one asset by slug or symbol (case-insensitive)."""
    asset = service.get_stablecoin(identifier)
    if asset is None:
        raise HTTPException(status_code=404, detail=f"Stablecoin not found: {identifier}")
    return asset
