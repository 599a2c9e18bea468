"""Merged, cross-source models published in each refresh snapshot."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

STABLECOIN = "Stablecoin"
TOKENIZED_ASSET = "Tokenized Asset"


class ChainHistory(BaseModel):
    prev_day: Optional[float] = None
    prev_week: Optional[float] = None
    prev_month: Optional[float] = None


class NetworkBreakdownEntry(BaseModel):
    platform: str
    network: Optional[str] = None
    supply: Optional[float] = None
    percentage: Optional[float] = None
    contract_address: Optional[str] = None
    historical: Optional[ChainHistory] = None


class AggregatedMarketData(BaseModel):
    price: Optional[float] = None
    price_source: Optional[str] = None
    market_cap: Optional[float] = None
    market_cap_source: Optional[str] = None
    volume_24h: Optional[float] = None
    volume_source: Optional[str] = None
    percent_change_24h: Optional[float] = None
    rank: Optional[int] = None
    source_prices: Dict[str, float] = Field(default_factory=dict)


class AggregatedSupplyData(BaseModel):
    circulating: Optional[float] = None
    circulating_source: Optional[str] = None
    total: Optional[float] = None
    total_source: Optional[str] = None
    max: Optional[float] = None
    max_source: Optional[str] = None
    network_breakdown: List[NetworkBreakdownEntry] = Field(default_factory=list)


class ConflictRecord(BaseModel):
    field: str
    values_by_source: Dict[str, Any]
    normalized: List[str]
    conflict_count: int
    timestamp: datetime


class AggregatedMetadata(BaseModel):
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    date_added: Optional[str] = None
    pegged_asset: Optional[str] = None
    conflicts: Dict[str, ConflictRecord] = Field(default_factory=dict)
    defillama: Optional[Dict[str, Any]] = None


class Confidence(BaseModel):
    overall: float
    market_data: float
    supply_data: float
    platform_data: float
    source_count: int
    consensus: float


class Quality(BaseModel):
    has_recent_data: bool
    has_multiple_sources: bool
    has_market_data: bool
    has_supply_data: bool
    warnings: List[str] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)


class AggregatedAsset(BaseModel):
    """One stablecoin or tokenized asset merged across all contributing sources."""

    id: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    asset_category: str = STABLECOIN
    market_data: AggregatedMarketData
    supply_data: AggregatedSupplyData
    metadata: AggregatedMetadata
    confidence: Confidence
    data_sources: List[str]
    quality: Quality
    last_updated: datetime


class PlatformRollup(BaseModel):
    name: str
    uri: str
    mcap_sum: float
    mcap_sum_s: str
    coin_count: int
    top_coins: List[str] = Field(default_factory=list)


class MarketMetrics(BaseModel):
    total_market_cap: float = 0.0
    total_market_cap_formatted: str = "$0.00"
    total_volume: float = 0.0
    total_volume_formatted: str = "$0.00"
    count: int = 0
    platform_count: int = 0
    last_updated: Optional[datetime] = None


class ConflictSummary(BaseModel):
    """Conflict tallies for one aggregation cycle."""

    total_conflicts: int = 0
    conflicts_by_field: Dict[str, int] = Field(default_factory=dict)
    conflicts_by_asset: Dict[str, int] = Field(default_factory=dict)
    last_conflict_time: Optional[datetime] = None
