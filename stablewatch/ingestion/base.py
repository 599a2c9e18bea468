"""Abstract source interface for stablecoin data adapters."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from stablewatch.core.config import Settings, settings as default_settings
from stablewatch.core.logging import source_logger
from stablewatch.schemas.standardized import StandardizedAssetRecord, finite_or_none
from stablewatch.services.classifier import AssetClassifier, default_classifier

if TYPE_CHECKING:
    from stablewatch.services.health_monitor import HealthMonitor


RETRYABLE_ERRORS = frozenset({"timeout", "network", "server", "rate_limit"})


class SourceCapabilities(BaseModel):
    priority: int
    data_types: List[str] = Field(default_factory=list)
    has_market_data: bool = False
    has_supply_data: bool = False
    has_platform_data: bool = False
    has_network_breakdown: bool = False
    has_metadata: bool = False


@dataclass(frozen=True)
class SourcePayload:
    """Raw entries returned by one fetch, stamped with the fetch time."""

    items: List[Dict[str, Any]]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SourceFetchError(Exception):
    """A categorised failure of a single source fetch."""

    def __init__(
        self,
        source_id: str,
        error_type: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.source_id = source_id
        self.error_type = error_type
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return is_retryable(self.error_type)

    @classmethod
    def from_exception(cls, source_id: str, exc: BaseException) -> "SourceFetchError":
        if isinstance(exc, SourceFetchError):
            return exc
        message = str(exc) or exc.__class__.__name__
        return cls(source_id, categorize_error(exc), message, status_code_of(exc))


def status_code_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return getattr(exc, "status_code", None)


def categorize_error(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "unknown"
    if isinstance(exc, SourceFetchError):
        return exc.error_type
    status = status_code_of(exc)
    if status is not None:
        if status in (401, 403):
            return "auth"
        if status == 404:
            return "not_found"
        if status == 429:
            return "rate_limit"
        if status >= 500:
            return "server"
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError, ConnectionError)):
        return "network"
    if isinstance(exc, (json.JSONDecodeError, ValidationError, KeyError, TypeError, ValueError)):
        return "parse"
    if "timeout" in str(exc).lower():
        return "timeout"
    return "unknown"


def is_retryable(error_type: str) -> bool:
    return error_type in RETRYABLE_ERRORS


def in_price_band(price: Any, low: float, high: float) -> bool:
    """A missing price passes; a quoted one must sit inside [low, high]."""
    value = finite_or_none(price)
    return value is None or low <= value <= high


def dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None when any hop is missing."""
    current = data
    for key in path:
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int) and -len(current) <= key < len(current):
            current = current[key]
        else:
            return None
        if current is None:
            return None
    return current


async def filter_in_chunks(
    items: List[Dict[str, Any]],
    predicate: Callable[[Dict[str, Any]], bool],
    chunk_size: int = 1000,
) -> List[Dict[str, Any]]:
    """Filter a payload, yielding to the event loop between chunks when it is large."""
    if len(items) <= chunk_size:
        return [item for item in items if predicate(item)]

    kept: List[Dict[str, Any]] = []
    for start in range(0, len(items), chunk_size):
        kept.extend(item for item in items[start:start + chunk_size] if predicate(item))
        await asyncio.sleep(0)
    return kept


class BaseSource(ABC):
    """Abstract base class for stablecoin data sources."""

    source_id: str
    source_name: str
    default_priority: int = 5
    confidence: float = 0.8

    def __init__(
        self,
        settings: Optional[Settings] = None,
        health_monitor: Optional["HealthMonitor"] = None,
        classifier: Optional[AssetClassifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or default_settings
        self.health_monitor = health_monitor
        self.classifier = classifier or default_classifier
        self.transport = transport

    @abstractmethod
    async def fetch_stablecoins(self) -> SourcePayload:
        """Fetch and pre-filter raw entries. Network and parse errors propagate."""

    @abstractmethod
    def transform_entry(self, entry: Dict[str, Any], fetched_at: datetime) -> Optional[StandardizedAssetRecord]:
        """Standardize one raw entry; return None to skip it."""

    @abstractmethod
    def get_capabilities(self) -> SourceCapabilities:
        """Declared priority and data coverage."""

    @property
    def log(self):
        return source_logger(self.source_id)

    @property
    def timeout(self) -> float:
        return 15.0

    def is_configured(self) -> bool:
        return True

    def get_source_id(self) -> str:
        return self.source_id

    def get_source_name(self) -> str:
        return self.source_name

    def get_rate_limit_info(self) -> Dict[str, Any]:
        return {"requests_per_minute": None, "requires_api_key": False}

    def get_health_status(self) -> Dict[str, Any]:
        if not self.health_monitor:
            return {"healthy": True}
        try:
            return self.health_monitor.get_source_health(self.source_id)
        except KeyError:
            return {"healthy": True}

    def transform_to_standard_format(self, raw: SourcePayload | Iterable[Dict[str, Any]]) -> List[StandardizedAssetRecord]:
        """Standardize a payload. Malformed entries are skipped, never raised."""
        payload = raw if isinstance(raw, SourcePayload) else SourcePayload(list(raw or []))
        records: List[StandardizedAssetRecord] = []
        skipped = 0
        for entry in payload.items:
            if not isinstance(entry, dict):
                skipped += 1
                continue
            try:
                record = self.transform_entry(entry, payload.fetched_at)
            except Exception as exc:  # noqa: BLE001
                self.log.debug(f"Skipping malformed entry {entry.get('symbol')!r}: {exc}")
                record = None
            if record is None:
                skipped += 1
                continue
            records.append(record)
        if skipped:
            self.log.debug(f"Skipped {skipped} of {len(payload.items)} entries during transform")
        return records

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------
    def _client(self, headers: Optional[Dict[str, str]] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self.transport)

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        async with self._client(headers) as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()

    def _classify(self, metadata: Dict[str, Any], name: Optional[str], symbol: Optional[str], slug: Optional[str]) -> Dict[str, Any]:
        """Fill asset_category / pegged_asset on a metadata dict when missing."""
        result = self.classifier.classify(metadata.get("tags") or [], name, symbol, slug)
        metadata.setdefault("asset_category", result.asset_category)
        if not metadata.get("pegged_asset"):
            metadata["pegged_asset"] = result.pegged_asset
        return metadata
