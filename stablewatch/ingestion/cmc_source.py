"""CoinMarketCap source implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from stablewatch.schemas.standardized import StandardizedAssetRecord
from .base import BaseSource, SourceCapabilities, SourcePayload, dig, filter_in_chunks, in_price_band

LISTINGS_PATH = "/v1/cryptocurrency/listings/latest"
LOGO_URL = "https://s2.coinmarketcap.com/static/img/coins/64x64/{id}.png"
STABLECOIN_TAG = "stablecoin"


class CmcSource(BaseSource):
    """Fetches stablecoin and tokenized asset listings from CoinMarketCap."""

    source_id = "cmc"
    source_name = "CoinMarketCap"
    default_priority = 10
    confidence = 0.9

    @property
    def timeout(self) -> float:
        return self.settings.CMC_TIMEOUT_SECONDS

    def is_configured(self) -> bool:
        return bool(self.settings.CMC_API_KEY)

    def get_capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(
            priority=self.default_priority,
            data_types=["market_data", "supply_data", "platform_data", "metadata"],
            has_market_data=True,
            has_supply_data=True,
            has_platform_data=True,
            has_network_breakdown=False,
            has_metadata=True,
        )

    def get_rate_limit_info(self) -> Dict[str, Any]:
        return {"requests_per_minute": 30, "monthly_credits": 10_000, "requires_api_key": True}

    async def fetch_stablecoins(self) -> SourcePayload:
        url = f"{self.settings.CMC_BASE_URL.rstrip('/')}{LISTINGS_PATH}"
        params = {
            "start": "1",
            "limit": str(self.settings.CMC_MAX_RESULTS),
            "aux": "tags,platform,date_added,max_supply,circulating_supply,total_supply,cmc_rank",
        }
        headers = {"X-CMC_PRO_API_KEY": self.settings.CMC_API_KEY or "", "Accept": "application/json"}
        data = await self._get_json(url, params=params, headers=headers)

        listings = data.get("data") if isinstance(data, dict) else None
        if not isinstance(listings, list):
            raise ValueError("No data received from CoinMarketCap API")

        kept = await filter_in_chunks(listings, self._is_included, self.settings.FILTER_CHUNK_SIZE)
        self.log.info(f"Fetched {len(listings)} listings from CoinMarketCap, kept {len(kept)}")
        return SourcePayload(kept)

    def _is_included(self, coin: Dict[str, Any]) -> bool:
        if not isinstance(coin, dict):
            return False
        tags = [str(t).lower() for t in coin.get("tags") or []]
        if STABLECOIN_TAG in tags:
            return in_price_band(
                dig(coin, "quote", "USD", "price"),
                self.settings.CMC_PRICE_MIN,
                self.settings.CMC_PRICE_MAX,
            )
        return self.settings.INCLUDE_TOKENIZED_ASSETS and self.classifier.is_tokenized(tags)

    def transform_entry(self, coin: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        symbol = coin.get("symbol")
        name = coin.get("name")
        if not symbol or not name:
            return None

        quote = dig(coin, "quote", "USD") or {}
        price = quote.get("price")
        market_cap = quote.get("market_cap")
        if market_cap and price:
            circulating = market_cap / price
        else:
            circulating = coin.get("circulating_supply")

        platforms = self._platforms(coin.get("platform"))
        slug = (coin.get("slug") or symbol).lower()
        metadata = self._classify(
            {
                "tags": coin.get("tags") or [],
                "logo_url": LOGO_URL.format(id=coin["id"]) if coin.get("id") is not None else None,
                "date_added": coin.get("date_added"),
            },
            name,
            symbol,
            slug,
        )

        return StandardizedAssetRecord(
            source_id=self.source_id,
            id=coin.get("id"),
            name=name,
            symbol=symbol,
            slug=slug,
            market_data={
                "price": price,
                "market_cap": market_cap,
                "volume_24h": quote.get("volume_24h"),
                "percent_change_24h": quote.get("percent_change_24h"),
                "rank": coin.get("cmc_rank"),
            },
            supply_data={
                "circulating": circulating,
                "total": coin.get("total_supply"),
                "max": coin.get("max_supply"),
                "network_breakdown": platforms,
            },
            platforms=platforms,
            metadata=metadata,
            confidence=self.confidence,
            timestamp=fetched_at,
        )

    @staticmethod
    def _platforms(platform: Any) -> List[Dict[str, Any]]:
        if not isinstance(platform, dict):
            return []
        network = platform.get("slug") or platform.get("symbol")
        return [
            {
                "name": platform.get("name") or "Unknown",
                "network": str(network).lower() if network else None,
                "contract_address": platform.get("token_address"),
            }
        ]
