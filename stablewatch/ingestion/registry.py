"""Source registry: the set of adapters taking part in refresh cycles."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Type

from stablewatch.core.config import KNOWN_SOURCES, Settings, settings as default_settings
from stablewatch.core.logging import get_logger
from .base import BaseSource
from .cmc_source import CmcSource
from .coingecko_source import CoinGeckoSource
from .defillama_source import DefiLlamaSource
from .messari_source import MessariSource

if TYPE_CHECKING:
    from stablewatch.services.health_monitor import HealthMonitor

log = get_logger("ingestion.registry")

SOURCE_CLASSES: Dict[str, Type[BaseSource]] = {
    "cmc": CmcSource,
    "messari": MessariSource,
    "coingecko": CoinGeckoSource,
    "defillama": DefiLlamaSource,
}


class SourceRegistry:
    """Holds registered adapters and exposes the configured ones.

    Usage:
        registry = SourceRegistry(health_monitor)
        registry.register(CmcSource(settings, health_monitor))
        active = registry.get_active()
    """

    def __init__(self, health_monitor: Optional["HealthMonitor"] = None):
        self.health_monitor = health_monitor
        self._sources: Dict[str, BaseSource] = {}

    def register(self, source: BaseSource) -> "SourceRegistry":
        source_id = source.get_source_id()
        if source_id in self._sources:
            log.warning(f"Source {source_id} registered twice; replacing previous adapter")
        self._sources[source_id] = source
        if self.health_monitor:
            self.health_monitor.initialize_source(source_id)
        log.debug(f"Registered source: {source_id}")
        return self

    def get(self, source_id: str) -> Optional[BaseSource]:
        return self._sources.get(source_id)

    def get_all(self) -> List[BaseSource]:
        return list(self._sources.values())

    def get_active(self) -> List[BaseSource]:
        """Adapters that report themselves configured."""
        active: List[BaseSource] = []
        for source in self._sources.values():
            try:
                configured = source.is_configured()
            except Exception as exc:  # noqa: BLE001
                log.warning(f"is_configured() failed for {source.get_source_id()}: {exc}")
                configured = False
            if configured:
                active.append(source)
        return active

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    @classmethod
    def create_default(
        cls,
        health_monitor: Optional["HealthMonitor"] = None,
        settings: Optional[Settings] = None,
    ) -> "SourceRegistry":
        """Build a registry holding only the sources listed in ENABLED_SOURCES."""
        settings = settings or default_settings
        enabled = set(settings.enabled_sources)
        unknown = enabled.difference(KNOWN_SOURCES)
        if unknown:
            log.warning(f"Ignoring unknown sources in ENABLED_SOURCES: {sorted(unknown)}")

        registry = cls(health_monitor)
        for source_id in KNOWN_SOURCES:
            if source_id in enabled:
                registry.register(SOURCE_CLASSES[source_id](settings=settings, health_monitor=health_monitor))
        log.info(f"Source registry created with {len(registry)} sources: {[s.get_source_id() for s in registry.get_all()]}")
        return registry
