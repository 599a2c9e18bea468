"""Standardized per-source asset record produced by every source adapter."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, Field, field_validator


def finite_or_none(value: Any) -> Optional[float]:
    """Coerce to a finite float; NaN, infinities and garbage become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def int_or_none(value: Any) -> Optional[int]:
    number = finite_or_none(value)
    return int(number) if number is not None else None


def str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


OptionalFloat = Annotated[Optional[float], BeforeValidator(finite_or_none)]
OptionalInt = Annotated[Optional[int], BeforeValidator(int_or_none)]
OptionalStr = Annotated[Optional[str], BeforeValidator(str_or_none)]


class ChainSupplyEntry(BaseModel):
    """Supply of an asset on one blockchain as reported by a source."""

    name: OptionalStr = None
    network: OptionalStr = None
    contract_address: OptionalStr = None
    supply: OptionalFloat = None
    percentage: OptionalFloat = None


class MarketData(BaseModel):
    price: OptionalFloat = None
    market_cap: OptionalFloat = None
    volume_24h: OptionalFloat = None
    percent_change_24h: OptionalFloat = None
    rank: OptionalInt = None


class SupplyData(BaseModel):
    circulating: OptionalFloat = None
    total: OptionalFloat = None
    max: OptionalFloat = None
    network_breakdown: List[ChainSupplyEntry] = Field(default_factory=list)


class AssetMetadata(BaseModel):
    tags: List[str] = Field(default_factory=list)
    description: OptionalStr = None
    website: OptionalStr = None
    logo_url: OptionalStr = None
    date_added: OptionalStr = None
    pegged_asset: OptionalStr = None
    asset_category: OptionalStr = None
    # Source-specific extension data (e.g. DeFiLlama chain circulation)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def _unique_tags(cls, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        seen: Dict[str, None] = {}
        for tag in value:
            if tag is None:
                continue
            text = str(tag).strip()
            if text:
                seen.setdefault(text, None)
        return list(seen)


class StandardizedAssetRecord(BaseModel):
    """One asset as reported by one source, in the common shape."""

    source_id: str
    id: OptionalStr = None
    name: OptionalStr = None
    symbol: OptionalStr = None
    slug: OptionalStr = None
    market_data: MarketData = Field(default_factory=MarketData)
    supply_data: SupplyData = Field(default_factory=SupplyData)
    platforms: List[ChainSupplyEntry] = Field(default_factory=list)
    metadata: AssetMetadata = Field(default_factory=AssetMetadata)
    confidence: float = 0.5
    timestamp: datetime

    @field_validator("symbol", mode="after")
    @classmethod
    def _upper_symbol(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value

    @property
    def merge_key(self) -> str:
        """Upper-cased symbol, falling back to slug then name."""
        return (self.symbol or self.slug or self.name or "").strip().upper()
