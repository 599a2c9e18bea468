"""CoinGecko source implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from stablewatch.schemas.standardized import StandardizedAssetRecord
from .base import BaseSource, SourceCapabilities, SourcePayload, filter_in_chunks, in_price_band

MARKETS_PATH = "/coins/markets"


class CoinGeckoSource(BaseSource):
    """Fetches the stablecoin category market listing from CoinGecko."""

    source_id = "coingecko"
    source_name = "CoinGecko"
    default_priority = 6
    confidence = 0.8

    @property
    def timeout(self) -> float:
        return self.settings.COINGECKO_TIMEOUT_SECONDS

    def get_capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(
            priority=self.default_priority,
            data_types=["price", "market_cap", "volume", "supply", "metadata"],
            has_market_data=True,
            has_supply_data=True,
            has_platform_data=False,
            has_network_breakdown=False,
            has_metadata=True,
        )

    def get_rate_limit_info(self) -> Dict[str, Any]:
        keyed = bool(self.settings.COINGECKO_API_KEY)
        return {"requests_per_minute": 500 if keyed else 10, "burst_limit": 20 if keyed else 5, "requires_api_key": False}

    async def fetch_stablecoins(self) -> SourcePayload:
        url = f"{self.settings.COINGECKO_BASE_URL.rstrip('/')}{MARKETS_PATH}"
        headers = {"Accept": "application/json"}
        if self.settings.COINGECKO_API_KEY:
            headers["x-cg-demo-api-key"] = self.settings.COINGECKO_API_KEY

        per_page = self.settings.COINGECKO_PER_PAGE
        coins: List[Dict[str, Any]] = []
        async with self._client(headers) as client:
            for page in range(1, self.settings.COINGECKO_MAX_PAGES + 1):
                params = {
                    "vs_currency": "usd",
                    "category": self.settings.COINGECKO_CATEGORY,
                    "order": "market_cap_desc",
                    "per_page": per_page,
                    "page": page,
                    "sparkline": "false",
                    "price_change_percentage": "24h",
                }
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                batch = resp.json()
                if not isinstance(batch, list):
                    raise ValueError("Unexpected CoinGecko markets payload")
                coins.extend(batch)
                if len(batch) < per_page:
                    break

        kept = await filter_in_chunks(coins, self._is_included, self.settings.FILTER_CHUNK_SIZE)
        self.log.info(f"Fetched {len(coins)} markets from CoinGecko, kept {len(kept)}")
        return SourcePayload(kept)

    def _is_included(self, coin: Dict[str, Any]) -> bool:
        return (
            isinstance(coin, dict)
            and bool(coin.get("symbol"))
            and bool(coin.get("name"))
            and in_price_band(coin.get("current_price"), self.settings.COINGECKO_PRICE_MIN, self.settings.COINGECKO_PRICE_MAX)
        )

    def transform_entry(self, coin: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        symbol = coin.get("symbol")
        name = coin.get("name")
        if not symbol or not name:
            return None

        slug = (coin.get("id") or symbol).lower()
        # Everything in the category listing is a stablecoin by construction
        metadata = self._classify({"tags": ["stablecoin"], "logo_url": coin.get("image")}, name, symbol, slug)

        return StandardizedAssetRecord(
            source_id=self.source_id,
            id=coin.get("id"),
            name=name,
            symbol=symbol,
            slug=slug,
            market_data={
                "price": coin.get("current_price"),
                "market_cap": coin.get("market_cap"),
                "volume_24h": coin.get("total_volume"),
                "percent_change_24h": coin.get("price_change_percentage_24h"),
                "rank": coin.get("market_cap_rank"),
            },
            supply_data={
                "circulating": coin.get("circulating_supply"),
                "total": coin.get("total_supply"),
                "max": coin.get("max_supply"),
            },
            metadata=metadata,
            confidence=self.confidence,
            timestamp=fetched_at,
        )
