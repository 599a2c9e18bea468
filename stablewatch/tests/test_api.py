"""API endpoint tests"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import StaticSource
from stablewatch.api.deps import get_health_monitor, get_service
from stablewatch.ingestion.registry import SourceRegistry
from stablewatch.main import app
from stablewatch.schemas.aggregated import TOKENIZED_ASSET
from stablewatch.services.health_monitor import HealthMonitor
from stablewatch.services.stablecoin_service import StablecoinDataService

ENTRIES = [
    {"symbol": "USDT", "name": "Tether", "slug": "tether", "price": 1.0, "market_cap": 80e9, "circulating": 80e9,
     "breakdown": [{"name": "Ethereum", "network": "ethereum", "supply": 50e9}]},
    {"symbol": "USDC", "name": "USD Coin", "slug": "usd-coin", "price": 1.0, "market_cap": 30e9},
    {"symbol": "PAXG", "name": "PAX Gold", "slug": "pax-gold", "price": 2300.0, "market_cap": 5e8,
     "category": TOKENIZED_ASSET, "tags": []},
]


def make_service(settings, clock, entries=ENTRIES):
    monitor = HealthMonitor(settings, clock)
    registry = SourceRegistry(monitor).register(StaticSource("cmc", entries, priority=10))
    return StablecoinDataService(registry, monitor, settings, clock)


class TestAPI:
    """Test API endpoints"""

    @pytest.fixture
    def service(self, settings, clock):
        service = make_service(settings, clock)
        asyncio.run(service.refresh_data())
        return service

    @pytest.fixture
    def client(self, service):
        """Create test client bound to a pre-loaded service"""
        app.dependency_overrides[get_service] = lambda: service
        app.dependency_overrides[get_health_monitor] = lambda: service.health_monitor
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_list_stablecoins(self, client):
        response = client.get("/stablecoins")
        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 3
        assert [a["symbol"] for a in body["data"]] == ["USDT", "USDC", "PAXG"]
        assert "request_id" in body

    def test_list_filters_and_paginates(self, client):
        body = client.get("/stablecoins?category=stablecoin&limit=1&offset=1").json()
        assert body["total_count"] == 2
        assert [a["symbol"] for a in body["data"]] == ["USDC"]
        tokenized = client.get("/stablecoins?category=tokenized").json()
        assert [a["symbol"] for a in tokenized["data"]] == ["PAXG"]

    def test_get_by_slug_or_symbol(self, client):
        assert client.get("/stablecoins/tether").json()["symbol"] == "USDT"
        assert client.get("/stablecoins/usdc").json()["slug"] == "usd-coin"

    def test_unknown_stablecoin_404(self, client):
        assert client.get("/stablecoins/nope").status_code == 404

    def test_platforms(self, client):
        body = client.get("/platforms").json()
        names = [p["name"] for p in body["data"]]
        assert names[0] == "Ethereum"
        assert body["total_count"] == len(names)

    def test_metrics_segments(self, client):
        body = client.get("/metrics").json()
        assert body["combined"]["count"] == 3
        assert body["stablecoin"]["total_market_cap"] + body["tokenized_asset"]["total_market_cap"] == pytest.approx(
            body["combined"]["total_market_cap"]
        )

    def test_view_model(self, client):
        body = client.get("/view").json()
        usdt = body["stablecoins"][0]
        assert usdt["mcap_s"] == "$80.0B"
        assert usdt["price_s"] == "$1.0000"
        assert usdt["platforms"][0]["name"] == "Ethereum"
        assert usdt["uri"] == "tether"

    def test_sources(self, client):
        body = client.get("/sources").json()
        assert body[0]["id"] == "cmc"
        assert body[0]["priority"] == 10

    def test_health_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["healthy"] is True

    def test_source_health(self, client):
        assert client.get("/health/sources/cmc").json()["circuit_breaker"]["state"] == "closed"
        assert client.get("/health/sources/unknown").status_code == 404

    def test_alerts_and_conflicts(self, client):
        assert client.get("/health/alerts").json() == []
        body = client.get("/health/conflicts").json()
        assert body["latest_cycle"]["total_conflicts"] == 0
        assert body["metrics"]["status"] == "healthy"

    def test_refresh(self, client):
        body = client.post("/refresh").json()
        assert body["success"] is True
        assert body["stablecoins_updated"] == 3

    def test_invalid_endpoint(self, client):
        """Test invalid endpoint returns 404"""
        assert client.get("/invalid").status_code == 404


class TestHealthWithoutData:
    """Test health endpoint before any data is loaded"""

    def test_health_503_without_data(self, settings, clock):
        service = make_service(settings, clock)
        app.dependency_overrides[get_service] = lambda: service
        try:
            response = TestClient(app).get("/health")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 503
        assert response.json()["status"] == "no_data"
