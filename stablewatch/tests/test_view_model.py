"""View model tests"""

from conftest import NOW, make_record
from stablewatch.services.aggregation import aggregate, build_platform_rollups, segmented_metrics
from stablewatch.services.view_model import build_view_model


class TestViewModel:
    """Test presentation transform"""

    def test_build_view_model(self):
        assets = aggregate(
            {
                "cmc": [
                    make_record(
                        "cmc",
                        "USDT",
                        price=1.0,
                        market_cap=80e9,
                        circulating=80e9,
                        pegged_asset="USD",
                        name="Tether",
                        slug="tether",
                        breakdown=[
                            {"name": "Ethereum", "network": "ethereum", "supply": 50e9, "percentage": 62.5},
                            {"name": "ETH", "network": "eth", "supply": 1e9},
                        ],
                    ),
                    make_record("cmc", "DAI", tags=["stablecoin", "ethereum-ecosystem"]),
                ]
            },
            {"cmc": 10},
            NOW,
        ).assets
        platforms = build_platform_rollups(assets)
        view = build_view_model(assets, platforms, segmented_metrics(assets, len(platforms), NOW))

        usdt, dai = view.stablecoins
        assert usdt.uri == "tether"
        assert usdt.pegged_asset == "USD"
        assert usdt.circulating_supply_s == "80.0B"
        assert [p.name for p in usdt.platforms] == ["Ethereum"]
        assert usdt.platforms[0].percentage_s == "62.50%"
        assert usdt.sources == ["cmc"]
        assert 0 < usdt.confidence_pct <= 100

        assert dai.price_s == "No data"
        assert [p.name for p in dai.platforms] == ["Ethereum"]
        assert view.metrics["combined"].count == 2
        assert view.platform_data[0].name == "Ethereum"
