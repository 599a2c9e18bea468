"""Refresh cycle orchestration and the published stablecoin snapshot."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from stablewatch.core.config import Settings, settings as default_settings
from stablewatch.core.logging import get_logger
from stablewatch.ingestion.base import BaseSource, SourceFetchError
from stablewatch.ingestion.registry import SourceRegistry
from stablewatch.schemas.aggregated import (
    STABLECOIN,
    TOKENIZED_ASSET,
    AggregatedAsset,
    ConflictSummary,
    MarketMetrics,
    PlatformRollup,
)
from stablewatch.schemas.standardized import StandardizedAssetRecord
from stablewatch.services.aggregation import (
    ConfidenceWeights,
    aggregate,
    build_platform_rollups,
    effective_priorities,
    segmented_metrics,
)
from stablewatch.services.health_monitor import HealthMonitor
from stablewatch.services.view_model import ViewModel, build_view_model

log = get_logger("services.stablecoin")

Clock = Callable[[], float]

REFRESH_IN_PROGRESS = "refresh already in progress"
CIRCUIT_OPEN = "circuit breaker open"


@dataclass(frozen=True)
class Snapshot:
    """Everything one successful refresh cycle produced. Never mutated after publish."""

    assets: Tuple[AggregatedAsset, ...]
    platforms: Tuple[PlatformRollup, ...]
    metrics: Dict[str, MarketMetrics]
    view_model: ViewModel
    conflicts: ConflictSummary
    last_update: datetime
    source_results: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class SourceOutcome:
    source_id: str
    records: List[StandardizedAssetRecord]
    result: Dict[str, Any]
    error: Optional[str] = None


class StablecoinDataService:
    """Fetches every active source, merges the results and serves the latest snapshot.

    Readers always see either the previous snapshot or the new one: the
    snapshot reference is swapped in a single assignment at the end of a
    successful cycle. A cycle that yields no assets leaves the previous
    snapshot in place.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        health_monitor: HealthMonitor,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self.health_monitor = health_monitor
        self.settings = settings or default_settings
        self.clock: Clock = clock or time.time
        self.weights = ConfidenceWeights.from_settings(self.settings)
        self._snapshot: Optional[Snapshot] = None
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def create_default(cls, settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> "StablecoinDataService":
        settings = settings or default_settings
        monitor = HealthMonitor(settings, clock)
        registry = SourceRegistry.create_default(monitor, settings)
        return cls(registry, monitor, settings, clock)

    # -------------------------------------------------------------------------
    # Refresh cycle
    # -------------------------------------------------------------------------
    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def priorities(self) -> Dict[str, int]:
        declared = {s.get_source_id(): s.get_capabilities().priority for s in self.registry.get_all()}
        return effective_priorities(declared, self.settings.SOURCE_PRIORITY)

    async def refresh_data(self) -> Dict[str, Any]:
        """Run one refresh cycle. Never raises for source failures."""
        if self._refresh_lock.locked():
            log.info("Refresh requested while another is running; skipping")
            return self._result(False, 0, 0.0, {}, [REFRESH_IN_PROGRESS])

        async with self._refresh_lock:
            return await self._refresh()

    async def _refresh(self) -> Dict[str, Any]:
        started = time.perf_counter()
        sources = self.registry.get_active()
        log.info(f"Starting refresh cycle with {len(sources)} active sources")

        outcomes: List[SourceOutcome] = await asyncio.gather(*(self._fetch_source(s) for s in sources))
        source_results = {o.source_id: o.result for o in outcomes}
        errors = [o.error for o in outcomes if o.error]
        source_records = {o.source_id: o.records for o in outcomes if o.records}

        if sources and len(errors) == len(sources):
            log.error(f"All {len(sources)} sources failed: {errors}")

        degraded = self.health_monitor.check_degraded_mode()
        if degraded["recommended"]:
            log.warning(f"Degraded mode recommended: {degraded['reasons']}")

        now = self._now()
        result = aggregate(source_records, self.priorities(), now, self.weights)
        summary = result.conflicts.summary()
        self.health_monitor.record_conflict_metrics(summary, len(result.assets))
        duration = time.perf_counter() - started

        if not result.assets:
            errors.append("No stablecoin data available from any source")
            log.error("Refresh produced no stablecoins; keeping previous snapshot")
            return self._result(False, 0, duration, source_results, errors)

        platforms = build_platform_rollups(result.assets)
        metrics = segmented_metrics(result.assets, len(platforms), now)
        self._snapshot = Snapshot(
            assets=tuple(result.assets),
            platforms=tuple(platforms),
            metrics=metrics,
            view_model=build_view_model(result.assets, platforms, metrics),
            conflicts=summary,
            last_update=now,
            source_results=source_results,
        )
        log.info(
            f"Refresh complete: {len(result.assets)} stablecoins, {len(platforms)} platforms, "
            f"{summary.total_conflicts} conflicts in {duration:.2f}s"
        )
        return self._result(not errors, len(result.assets), duration, source_results, errors)

    async def _fetch_source(self, source: BaseSource) -> SourceOutcome:
        source_id = source.get_source_id()
        if not self.health_monitor.allow_request(source_id):
            source.log.debug("Circuit open, skipping fetch")
            return SourceOutcome(source_id, [], {"success": False, "skipped": True, "reason": CIRCUIT_OPEN})

        started = time.perf_counter()
        try:
            payload = await asyncio.wait_for(source.fetch_stablecoins(), timeout=source.timeout)
            records = source.transform_to_standard_format(payload)
        except asyncio.TimeoutError:
            error = SourceFetchError(source_id, "timeout", f"Timed out after {source.timeout:.0f}s")
        except Exception as exc:  # noqa: BLE001
            error = SourceFetchError.from_exception(source_id, exc)
        else:
            duration_ms = (time.perf_counter() - started) * 1000
            self.health_monitor.record_success(
                source_id, duration_ms, record_count=len(records), operation="fetch_stablecoins"
            )
            source.log.info(f"{len(records)} records in {duration_ms:.0f}ms")
            return SourceOutcome(
                source_id, records, {"success": True, "records": len(records), "duration_ms": round(duration_ms)}
            )

        self.health_monitor.record_failure(
            source_id,
            error_type=error.error_type,
            message=error.message,
            status_code=error.status_code,
            retryable=error.retryable,
            operation="fetch_stablecoins",
        )
        source.log.warning(f"Fetch failed ({error.error_type}): {error.message}")
        return SourceOutcome(
            source_id,
            [],
            {"success": False, "error": error.message, "error_type": error.error_type, "retryable": error.retryable},
            f"{source_id}: {error.message}",
        )

    def _result(
        self,
        success: bool,
        count: int,
        duration: float,
        source_results: Dict[str, Dict[str, Any]],
        errors: List[str],
    ) -> Dict[str, Any]:
        return {
            "success": success,
            "stablecoins_updated": count,
            "duration": round(duration, 3),
            "source_results": source_results,
            "errors": errors,
            "timestamp": self._now(),
        }

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------
    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    def get_stablecoins(self) -> List[AggregatedAsset]:
        return list(self._snapshot.assets) if self._snapshot else []

    def get_stablecoin(self, identifier: str) -> Optional[AggregatedAsset]:
        """Look up by slug or symbol, case-insensitive."""
        needle = (identifier or "").strip().lower()
        if not needle:
            return None
        for asset in self.get_stablecoins():
            if needle in ((asset.slug or "").lower(), (asset.symbol or "").lower()):
                return asset
        return None

    def get_platform_data(self) -> List[PlatformRollup]:
        return list(self._snapshot.platforms) if self._snapshot else []

    def _metrics(self, segment: str) -> MarketMetrics:
        if not self._snapshot:
            return MarketMetrics()
        return self._snapshot.metrics.get(segment, MarketMetrics())

    def get_market_metrics(self) -> MarketMetrics:
        return self._metrics("combined")

    def get_stablecoin_metrics(self) -> MarketMetrics:
        return self._metrics("stablecoin")

    def get_tokenized_asset_metrics(self) -> MarketMetrics:
        return self._metrics("tokenized_asset")

    def get_view_model(self) -> ViewModel:
        return self._snapshot.view_model if self._snapshot else ViewModel()

    def get_conflicts(self) -> ConflictSummary:
        return self._snapshot.conflicts if self._snapshot else ConflictSummary()

    def get_data_sources(self) -> List[Dict[str, Any]]:
        priorities = self.priorities()
        sources = []
        for source in self.registry.get_all():
            source_id = source.get_source_id()
            sources.append(
                {
                    "id": source_id,
                    "name": source.get_source_name(),
                    "configured": source.is_configured(),
                    "healthy": bool(source.get_health_status().get("healthy", True)),
                    "capabilities": source.get_capabilities().model_dump(),
                    "priority": priorities.get(source_id),
                    "rate_limit": source.get_rate_limit_info(),
                }
            )
        return sources

    def get_data_freshness(self) -> Dict[str, Any]:
        if not self._snapshot:
            return {"last_update": None, "age": None, "is_stale": True, "next_update": None}
        last = self._snapshot.last_update
        interval = self.settings.update_interval_seconds
        age = max(0.0, self.clock() - last.timestamp())
        return {
            "last_update": last,
            "age": age,
            "is_stale": age > 2 * interval,
            "next_update": last + timedelta(seconds=interval),
        }

    def get_category_counts(self) -> Dict[str, int]:
        counts = {STABLECOIN: 0, TOKENIZED_ASSET: 0}
        for asset in self.get_stablecoins():
            counts[asset.asset_category] = counts.get(asset.asset_category, 0) + 1
        return counts

    def get_health_status(self) -> Dict[str, Any]:
        system = self.health_monitor.get_system_health()
        freshness = self.get_data_freshness()
        has_data = self._snapshot is not None
        warnings: List[str] = []
        if not has_data:
            warnings.append("No stablecoin data loaded yet")
        elif freshness["is_stale"]:
            warnings.append(f"Data is stale ({freshness['age'] / 60:.0f} minutes old)")
        warnings.extend(system["degraded_mode"]["reasons"])

        return {
            "healthy": has_data and system["operational"],
            "status": system["status"] if has_data else "no_data",
            "data_freshness": freshness,
            "sources": system["sources"],
            "metrics": {
                **system["metrics"],
                "stablecoin_count": len(self.get_stablecoins()),
                "platform_count": len(self.get_platform_data()),
                "categories": self.get_category_counts(),
            },
            "warnings": warnings,
        }
