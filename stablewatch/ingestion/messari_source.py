"""Messari source implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from stablewatch.schemas.standardized import StandardizedAssetRecord, finite_or_none
from .base import BaseSource, SourceCapabilities, SourcePayload, dig

STABLECOINS_PATH = "/metrics/v2/stablecoins"
PEGGED_PRICE = 1.0
# Messari responses are not consistent about where per-chain supply lives
BREAKDOWN_KEYS = ("networkBreakdown", "network_breakdown", "breakdown", "networks", "chains", "platforms")


class MessariSource(BaseSource):
    """Fetches stablecoin supply metrics and per-network breakdowns from Messari."""

    source_id = "messari"
    source_name = "Messari"
    default_priority = 8
    confidence = 0.85

    @property
    def timeout(self) -> float:
        return self.settings.MESSARI_TIMEOUT_SECONDS

    def is_configured(self) -> bool:
        return bool(self.settings.MESSARI_API_KEY)

    def get_capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(
            priority=self.default_priority,
            data_types=["supply_data", "network_breakdown", "metadata"],
            has_market_data=False,
            has_supply_data=True,
            has_platform_data=True,
            has_network_breakdown=True,
            has_metadata=True,
        )

    def get_rate_limit_info(self) -> Dict[str, Any]:
        return {"requests_per_minute": 20, "requires_api_key": True}

    async def fetch_stablecoins(self) -> SourcePayload:
        url = f"{self.settings.MESSARI_BASE_URL.rstrip('/')}{STABLECOINS_PATH}"
        headers = {"x-messari-api-key": self.settings.MESSARI_API_KEY or "", "Accept": "application/json"}
        data = await self._get_json(url, headers=headers)

        entries = data.get("data") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ValueError("Unexpected Messari stablecoin payload")

        self.log.info(f"Fetched {len(entries)} stablecoins from Messari")
        return SourcePayload(entries)

    def transform_entry(self, entry: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        symbol = entry.get("symbol")
        name = entry.get("name")
        if not symbol or not name:
            return None

        supply = entry.get("supply") or {}
        circulating = finite_or_none(supply.get("circulating"))
        quoted = None
        for candidate in (entry.get("price"), entry.get("price_usd"), dig(entry, "metrics", "market_data", "price_usd")):
            quoted = finite_or_none(candidate)
            if quoted is not None:
                break
        price = quoted if quoted is not None else PEGGED_PRICE
        breakdown = self._network_breakdown(entry)
        slug = (entry.get("slug") or symbol).lower()
        tags = entry.get("tags") if isinstance(entry.get("tags"), list) else ["stablecoin"]
        metadata = self._classify(
            {
                "tags": tags,
                "description": dig(entry, "profile", "general", "overview", "project_details"),
                "website": dig(entry, "profile", "general", "overview", "official_links", 0, "link"),
                "logo_url": dig(entry, "profile", "images", "logo"),
            },
            name,
            symbol,
            slug,
        )

        return StandardizedAssetRecord(
            source_id=self.source_id,
            id=entry.get("id"),
            name=name,
            symbol=symbol,
            slug=slug,
            market_data={
                "price": price,
                "market_cap": circulating * price if circulating is not None else None,
            },
            supply_data={
                "circulating": circulating,
                "total": supply.get("total"),
                "max": supply.get("max"),
                "network_breakdown": breakdown,
            },
            platforms=breakdown,
            metadata=metadata,
            confidence=self.confidence,
            timestamp=fetched_at,
        )

    @staticmethod
    def _network_breakdown(entry: Dict[str, Any]) -> List[Dict[str, Any]]:
        raw: Any = None
        for key in BREAKDOWN_KEYS:
            if entry.get(key):
                raw = entry[key]
                break
        if isinstance(raw, dict):
            flattened: List[Any] = []
            for value in raw.values():
                flattened.extend(value if isinstance(value, list) else [value])
            raw = flattened
        if not isinstance(raw, list):
            return []

        out: List[Dict[str, Any]] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            network = item.get("network") or item.get("name")
            if not network:
                continue
            out.append(
                {
                    "name": network,
                    "network": network,
                    "contract_address": item.get("contract") or item.get("contract_address"),
                    "supply": item["supply"] if item.get("supply") is not None else item.get("amount"),
                    "percentage": item["share"] if item.get("share") is not None else item.get("percentage"),
                }
            )
        return out
