"""Display-ready projection of the aggregated snapshot."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from stablewatch.schemas.aggregated import AggregatedAsset, MarketMetrics, PlatformRollup
from stablewatch.services.aggregation import asset_platforms
from stablewatch.services.formatting import format_number, format_percentage, format_price, slugify


class PlatformView(BaseModel):
    name: str
    contract_address: Optional[str] = None
    supply_s: str
    percentage_s: str


class StablecoinView(BaseModel):
    name: Optional[str] = None
    symbol: Optional[str] = None
    uri: str
    img_url: Optional[str] = None
    category: str
    pegged_asset: Optional[str] = None
    price_s: str
    mcap_s: str
    volume_s: str
    circulating_supply_s: str
    total_supply_s: str
    platforms: List[PlatformView] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    confidence_pct: int


class ViewModel(BaseModel):
    stablecoins: List[StablecoinView] = Field(default_factory=list)
    metrics: Dict[str, MarketMetrics] = Field(default_factory=dict)
    platform_data: List[PlatformRollup] = Field(default_factory=list)


def to_view(asset: AggregatedAsset) -> StablecoinView:
    market = asset.market_data
    supply = asset.supply_data
    return StablecoinView(
        name=asset.name,
        symbol=asset.symbol,
        uri=slugify(asset.slug or asset.symbol or asset.id),
        img_url=asset.image_url,
        category=asset.asset_category,
        pegged_asset=asset.metadata.pegged_asset,
        price_s=format_price(market.price),
        mcap_s=format_number(market.market_cap),
        volume_s=format_number(market.volume_24h),
        circulating_supply_s=format_number(supply.circulating, dollar=False),
        total_supply_s=format_number(supply.total, dollar=False),
        platforms=[
            PlatformView(
                name=entry.platform,
                contract_address=entry.contract_address,
                supply_s=format_number(entry.supply, dollar=False),
                percentage_s=format_percentage(entry.percentage),
            )
            for entry in asset_platforms(asset)
        ],
        sources=list(asset.data_sources),
        confidence_pct=round(asset.confidence.overall * 100),
    )


def build_view_model(
    assets: Sequence[AggregatedAsset],
    platforms: Sequence[PlatformRollup],
    metrics: Dict[str, MarketMetrics],
) -> ViewModel:
    return ViewModel(
        stablecoins=[to_view(asset) for asset in assets],
        metrics=dict(metrics),
        platform_data=list(platforms),
    )
