"""Stablecoin data service tests"""

import asyncio

import httpx
import pytest

from conftest import NOW, StaticSource
from stablewatch.ingestion.registry import SourceRegistry
from stablewatch.schemas.aggregated import TOKENIZED_ASSET
from stablewatch.services.health_monitor import OPEN, HealthMonitor
from stablewatch.services.stablecoin_service import REFRESH_IN_PROGRESS, StablecoinDataService

USDT_CMC = {"symbol": "USDT", "price": 1.001, "market_cap": 83e9, "circulating": 82.9e9, "pegged_asset": "USD"}
USDT_MESSARI = {"symbol": "USDT", "price": 0.999, "market_cap": 82.5e9, "circulating": 82.6e9, "pegged_asset": "usd"}
PAXG_CMC = {"symbol": "PAXG", "price": 2300.0, "market_cap": 500e6, "category": TOKENIZED_ASSET, "tags": []}


class SlowSource(StaticSource):
    def __init__(self, *args, delay: float = 0.05, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    async def fetch_stablecoins(self):
        await asyncio.sleep(self.delay)
        return await super().fetch_stablecoins()


class HangingSource(SlowSource):
    @property
    def timeout(self) -> float:
        return 0.01


def build_service(settings, clock, *sources):
    monitor = HealthMonitor(settings, clock)
    registry = SourceRegistry(monitor)
    for source in sources:
        registry.register(source)
    return StablecoinDataService(registry, monitor, settings, clock)


class TestRefresh:
    """Test the refresh cycle"""

    @pytest.mark.asyncio
    async def test_refresh_merges_sources(self, settings, clock):
        service = build_service(
            settings,
            clock,
            StaticSource("cmc", [USDT_CMC, PAXG_CMC], priority=10),
            StaticSource("messari", [USDT_MESSARI], priority=8),
        )
        result = await service.refresh_data()

        assert result["success"] is True
        assert result["stablecoins_updated"] == 2
        assert result["errors"] == []
        assert result["source_results"]["cmc"]["success"] is True
        assert result["source_results"]["cmc"]["records"] == 2

        usdt = service.get_stablecoin("usdt")
        assert usdt.market_data.price == 1.001
        assert usdt.data_sources == ["cmc", "messari"]
        assert usdt.metadata.conflicts == {}
        assert service.get_stablecoin("PAXG").asset_category == TOKENIZED_ASSET
        assert service.get_stablecoin("missing") is None

        assert service.get_stablecoin_metrics().total_market_cap == pytest.approx(83e9)
        assert service.get_tokenized_asset_metrics().total_market_cap == pytest.approx(500e6)
        assert service.get_market_metrics().count == 2
        assert [v.symbol for v in service.get_view_model().stablecoins] == ["USDT", "PAXG"]

    @pytest.mark.asyncio
    async def test_partial_failure_reports_error_but_publishes(self, settings, clock):
        service = build_service(
            settings,
            clock,
            StaticSource("cmc", [USDT_CMC], priority=10),
            StaticSource("messari", error=httpx.ConnectError("refused"), priority=8),
        )
        result = await service.refresh_data()

        assert result["success"] is False
        assert result["stablecoins_updated"] == 1
        assert result["source_results"]["messari"]["error_type"] == "network"
        assert result["source_results"]["messari"]["retryable"] is True
        assert len(service.get_stablecoins()) == 1
        health = service.health_monitor.get_source_health("messari")
        assert health["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_all_sources_failing_keeps_previous_snapshot(self, settings, clock):
        cmc = StaticSource("cmc", [USDT_CMC], priority=10)
        service = build_service(settings, clock, cmc)
        await service.refresh_data()
        before = service.get_stablecoins()

        cmc.error = RuntimeError("down")
        result = await service.refresh_data()

        assert result["success"] is False
        assert result["stablecoins_updated"] == 0
        assert result["errors"]
        assert service.get_stablecoins() == before

    @pytest.mark.asyncio
    async def test_no_data_without_previous_snapshot(self, settings, clock):
        service = build_service(settings, clock, StaticSource("cmc", error=RuntimeError("down")))
        result = await service.refresh_data()
        assert result["success"] is False
        assert service.get_stablecoins() == []
        assert service.get_market_metrics().count == 0
        assert service.get_data_freshness()["is_stale"] is True

    @pytest.mark.asyncio
    async def test_open_circuit_skips_fetch(self, settings, clock):
        failing = StaticSource("cmc", error=httpx.ConnectError("refused"), priority=10)
        service = build_service(settings, clock, failing, StaticSource("messari", [USDT_MESSARI], priority=8))
        for _ in range(settings.CIRCUIT_BREAKER_FAILURES):
            await service.refresh_data()
        assert service.health_monitor.get_source_health("cmc")["circuit_breaker"]["state"] == OPEN

        calls = failing.calls
        result = await service.refresh_data()
        assert failing.calls == calls
        assert result["source_results"]["cmc"]["skipped"] is True
        assert result["success"] is True
        assert result["errors"] == []
        assert service.get_stablecoin("USDT").data_sources == ["messari"]

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_timeout(self, settings, clock):
        service = build_service(settings, clock, HangingSource("cmc", [USDT_CMC], delay=1.0))
        result = await service.refresh_data()
        assert result["source_results"]["cmc"]["error_type"] == "timeout"

    @pytest.mark.asyncio
    async def test_concurrent_refresh_is_rejected(self, settings, clock):
        service = build_service(settings, clock, SlowSource("cmc", [USDT_CMC], delay=0.05))
        first, second = await asyncio.gather(service.refresh_data(), service.refresh_data())
        assert first["success"] is True
        assert second["success"] is False
        assert second["errors"] == [REFRESH_IN_PROGRESS]

    @pytest.mark.asyncio
    async def test_conflicts_reach_health_monitor(self, settings, clock):
        service = build_service(
            settings,
            clock,
            StaticSource("cmc", [{**USDT_CMC, "symbol": "XYZ", "pegged_asset": "USD"}], priority=10),
            StaticSource("messari", [{**USDT_MESSARI, "symbol": "XYZ", "pegged_asset": "EUR"}], priority=8),
        )
        await service.refresh_data()
        assert service.get_conflicts().total_conflicts == 1
        assert service.health_monitor.get_conflict_metrics()["total_conflicts"] == 1


class TestReadSide:
    """Test getters, freshness and health status"""

    @pytest.fixture
    def service(self, settings, clock):
        return build_service(settings, clock, StaticSource("cmc", [USDT_CMC], priority=10))

    @pytest.mark.asyncio
    async def test_freshness(self, service, clock, settings):
        await service.refresh_data()
        fresh = service.get_data_freshness()
        assert fresh["last_update"] == NOW
        assert fresh["age"] == 0
        assert fresh["is_stale"] is False
        assert (fresh["next_update"] - NOW).total_seconds() == settings.update_interval_seconds

        clock.advance(2 * settings.update_interval_seconds + 1)
        assert service.get_data_freshness()["is_stale"] is True

    @pytest.mark.asyncio
    async def test_health_status(self, service):
        status = service.get_health_status()
        assert status["healthy"] is False
        assert status["status"] == "no_data"

        await service.refresh_data()
        status = service.get_health_status()
        assert status["healthy"] is True
        assert status["metrics"]["stablecoin_count"] == 1
        assert status["warnings"] == []

    def test_data_sources_use_priority_override(self, settings, clock):
        settings = settings.model_copy(update={"SOURCE_PRIORITY": {"cmc": 1}})
        service = build_service(settings, clock, StaticSource("cmc", priority=10))
        sources = service.get_data_sources()
        assert sources[0]["id"] == "cmc"
        assert sources[0]["priority"] == 1
        assert sources[0]["healthy"] is True


class TestRegistry:
    """Test source registry"""

    def test_default_registry_respects_enabled_sources(self, settings):
        settings = settings.model_copy(update={"ENABLED_SOURCES": "defillama, cmc, bogus"})
        monitor = HealthMonitor(settings)
        registry = SourceRegistry.create_default(monitor, settings)
        assert [s.get_source_id() for s in registry.get_all()] == ["cmc", "defillama"]
        assert "cmc" in registry and "messari" not in registry
        assert sorted(monitor.source_ids) == ["cmc", "defillama"]

    def test_active_excludes_unconfigured(self, settings):
        settings = settings.model_copy(update={"CMC_API_KEY": None})
        registry = SourceRegistry.create_default(None, settings)
        active = [s.get_source_id() for s in registry.get_active()]
        assert "cmc" not in active
        assert "coingecko" in active and "defillama" in active
