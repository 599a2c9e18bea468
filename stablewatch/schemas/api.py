from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from stablewatch.schemas.aggregated import AggregatedAsset, MarketMetrics, PlatformRollup


class StablecoinListResponse(BaseModel):
    request_id: str
    api_latency_ms: int
    total_count: int
    data: List[AggregatedAsset]


class PlatformListResponse(BaseModel):
    total_count: int
    data: List[PlatformRollup]


class MetricsResponse(BaseModel):
    combined: MarketMetrics
    stablecoin: MarketMetrics
    tokenized_asset: MarketMetrics


class DataFreshness(BaseModel):
    last_update: Optional[datetime] = None
    age: Optional[float] = None
    is_stale: bool
    next_update: Optional[datetime] = None


class HealthResponse(BaseModel):
    healthy: bool
    status: str
    data_freshness: DataFreshness
    sources: List[Dict[str, Any]] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class DataSourceOut(BaseModel):
    id: str
    name: str
    configured: bool
    healthy: bool
    capabilities: Dict[str, Any]
    priority: Optional[int] = None
    rate_limit: Dict[str, Any] = Field(default_factory=dict)


class RefreshResponse(BaseModel):
    success: bool
    stablecoins_updated: int
    duration: float
    source_results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    timestamp: datetime
