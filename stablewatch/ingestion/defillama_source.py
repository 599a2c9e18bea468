"""DeFiLlama source implementation.

DeFiLlama is the authoritative provider of per-chain circulating supply. Its
raw ``chainCirculating`` structure is kept in ``metadata.extra["defillama"]``
so the aggregation step can build the network breakdown from it directly.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from stablewatch.schemas.standardized import StandardizedAssetRecord, finite_or_none
from .base import BaseSource, SourceCapabilities, SourcePayload, filter_in_chunks, in_price_band

STABLECOINS_PATH = "/stablecoins"
EXTENSION_KEY = "defillama"

EXCLUDE_PATTERNS = (
    re.compile(r"wrapped", re.I),
    re.compile(r"liquid", re.I),
    re.compile(r"staked", re.I),
    re.compile(r"yield", re.I),
    re.compile(r"reward", re.I),
    re.compile(r"pool", re.I),
    re.compile(r"vault", re.I),
    re.compile(r"interest", re.I),
    re.compile(r"synthetic", re.I),
)
WRAPPED_SYMBOL = re.compile(r"^w[A-Z]+$")
STABLE_KEYWORDS = re.compile(r"usd|dollar|stable|eur|euro|gbp|pound|jpy|yen|cny|yuan", re.I)


def pegged_amount(amounts: Any, peg_type: Optional[str] = None) -> Optional[float]:
    """Pick the supply figure out of a ``{"peggedUSD": 123.0}`` style map."""
    if not isinstance(amounts, dict) or not amounts:
        return finite_or_none(amounts)
    for key in (peg_type, "peggedUSD", "peggedEUR"):
        if key and finite_or_none(amounts.get(key)) is not None:
            return finite_or_none(amounts[key])
    for value in amounts.values():
        number = finite_or_none(value)
        if number is not None:
            return number
    return None


class DefiLlamaSource(BaseSource):
    """Fetches pegged assets and their per-chain circulation from DeFiLlama."""

    source_id = "defillama"
    source_name = "DeFiLlama"
    default_priority = 4
    confidence = 0.85

    @property
    def timeout(self) -> float:
        return self.settings.DEFILLAMA_TIMEOUT_SECONDS

    def get_capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(
            priority=self.default_priority,
            data_types=["supply", "network_breakdown", "chains"],
            has_market_data=False,
            has_supply_data=True,
            has_platform_data=True,
            has_network_breakdown=True,
            has_metadata=False,
        )

    def get_rate_limit_info(self) -> Dict[str, Any]:
        return {"requests_per_minute": 30, "burst_limit": 10, "requires_api_key": False}

    async def fetch_stablecoins(self) -> SourcePayload:
        url = f"{self.settings.DEFILLAMA_BASE_URL.rstrip('/')}{STABLECOINS_PATH}"
        data = await self._get_json(url, params={"includePrices": "true"}, headers={"Accept": "application/json"})

        assets = data.get("peggedAssets") if isinstance(data, dict) else None
        if not isinstance(assets, list):
            raise ValueError("No peggedAssets in DeFiLlama response")

        kept = await filter_in_chunks(assets, self._is_included, self.settings.FILTER_CHUNK_SIZE)
        limit = self.settings.DEFILLAMA_MAX_COINS
        if len(kept) > limit:
            self.log.warning(f"DeFiLlama returned {len(kept)} stablecoins after filtering, keeping top {limit} by market cap")
            kept = sorted(kept, key=lambda a: -(self._market_cap(a) or 0.0))[:limit]
        self.log.info(f"Fetched {len(assets)} pegged assets from DeFiLlama, kept {len(kept)}")
        return SourcePayload(kept)

    def _is_included(self, asset: Dict[str, Any]) -> bool:
        if not isinstance(asset, dict):
            return False
        symbol = asset.get("symbol") or ""
        name = asset.get("name") or ""
        peg_type = asset.get("pegType") or ""
        if not symbol or not name:
            return False
        if peg_type in self.settings.DEFILLAMA_EXCLUDED_PEG_TYPES:
            return False
        if not in_price_band(asset.get("price"), self.settings.DEFILLAMA_PRICE_MIN, self.settings.DEFILLAMA_PRICE_MAX):
            return False
        if WRAPPED_SYMBOL.match(symbol) or any(p.search(name) or p.search(symbol) for p in EXCLUDE_PATTERNS):
            return False
        if not STABLE_KEYWORDS.search(f"{name} {symbol} {peg_type}"):
            return False
        circulating = pegged_amount(asset.get("circulating"), peg_type) or 0.0
        if circulating < self.settings.DEFILLAMA_MIN_SUPPLY:
            return False
        return (self._market_cap(asset) or 0.0) >= self.settings.DEFILLAMA_MIN_MCAP

    @staticmethod
    def _market_cap(asset: Dict[str, Any]) -> Optional[float]:
        circulating = pegged_amount(asset.get("circulating"), asset.get("pegType"))
        if circulating is None:
            return None
        price = finite_or_none(asset.get("price"))
        return circulating * (price if price is not None else 1.0)

    def transform_entry(self, asset: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        symbol = asset.get("symbol")
        name = asset.get("name")
        if not symbol or not name:
            return None

        peg_type = asset.get("pegType")
        circulating = pegged_amount(asset.get("circulating"), peg_type)
        chain_circulating = asset.get("chainCirculating") if isinstance(asset.get("chainCirculating"), dict) else {}
        breakdown = self._chain_entries(chain_circulating, peg_type, circulating)
        slug = (asset.get("gecko_id") or symbol).lower()

        metadata = self._classify(
            {
                "tags": [peg_type] if peg_type else [],
                "extra": {
                    EXTENSION_KEY: {
                        "id": asset.get("id"),
                        "peg_type": peg_type,
                        "peg_mechanism": asset.get("pegMechanism"),
                        "raw_circulating": asset.get("circulating"),
                        "raw_chain_circulating": chain_circulating,
                    }
                },
            },
            name,
            symbol,
            slug,
        )

        return StandardizedAssetRecord(
            source_id=self.source_id,
            id=asset.get("id"),
            name=name,
            symbol=symbol,
            slug=slug,
            market_data={
                "price": asset.get("price"),
                "market_cap": self._market_cap(asset),
            },
            supply_data={"circulating": circulating, "network_breakdown": breakdown},
            platforms=[{"name": chain, "network": chain.lower()} for chain in asset.get("chains") or [] if chain],
            metadata=metadata,
            confidence=self.confidence,
            timestamp=fetched_at,
        )

    @staticmethod
    def _chain_entries(chains: Dict[str, Any], peg_type: Optional[str], total: Optional[float]) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        for chain, data in chains.items():
            current = data.get("current") if isinstance(data, dict) else None
            supply = pegged_amount(current, peg_type)
            if not supply or supply <= 0:
                continue
            entries.append(
                {
                    "name": chain,
                    "network": chain.lower(),
                    "supply": supply,
                    "percentage": supply / total * 100 if total else None,
                }
            )
        return entries
