"""Shared fixtures: settings, a controllable clock and record builders."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from stablewatch.core.config import Settings
from stablewatch.ingestion.base import BaseSource, SourceCapabilities, SourcePayload
from stablewatch.schemas.standardized import StandardizedAssetRecord

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = NOW.timestamp()):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_record(
    source_id: str,
    symbol: str,
    price: Optional[float] = None,
    market_cap: Optional[float] = None,
    circulating: Optional[float] = None,
    pegged_asset: Optional[str] = None,
    category: Optional[str] = "Stablecoin",
    breakdown: Optional[List[Dict[str, Any]]] = None,
    extra: Optional[Dict[str, Any]] = None,
    timestamp: datetime = NOW,
    **fields: Any,
) -> StandardizedAssetRecord:
    return StandardizedAssetRecord(
        source_id=source_id,
        name=fields.pop("name", symbol.title()),
        symbol=symbol,
        slug=fields.pop("slug", symbol.lower()),
        market_data={"price": price, "market_cap": market_cap, **fields.pop("market", {})},
        supply_data={"circulating": circulating, "network_breakdown": breakdown or []},
        metadata={
            "tags": fields.pop("tags", ["stablecoin"]),
            "pegged_asset": pegged_asset,
            "asset_category": category,
            "extra": extra or {},
        },
        timestamp=timestamp,
        **fields,
    )


class StaticSource(BaseSource):
    """Adapter returning canned entries (or raising) without any network access."""

    def __init__(self, source_id: str, entries=None, error: Optional[BaseException] = None, priority: int = 5, **kwargs):
        super().__init__(**kwargs)
        self.source_id = source_id
        self.source_name = source_id.title()
        self.entries = entries or []
        self.error = error
        self.priority = priority
        self.calls = 0

    def get_capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(priority=self.priority, has_market_data=True, has_supply_data=True)

    async def fetch_stablecoins(self) -> SourcePayload:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return SourcePayload(list(self.entries), fetched_at=NOW)

    def transform_entry(self, entry: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        return make_record(self.source_id, timestamp=fetched_at, **entry)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        CMC_API_KEY="test-cmc",
        MESSARI_API_KEY="test-messari",
        CIRCUIT_BREAKER_FAILURES=3,
        CIRCUIT_BREAKER_COOLDOWN_SECONDS=60,
        CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES=2,
    )
