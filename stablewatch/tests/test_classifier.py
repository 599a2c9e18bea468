"""Classification, platform naming and formatting tests"""

import pytest

from stablewatch.schemas.aggregated import STABLECOIN, TOKENIZED_ASSET
from stablewatch.services.classifier import OTHER, AssetClassifier
from stablewatch.services.formatting import NO_DATA, format_number, format_percentage, format_price, slugify
from stablewatch.services.platforms import UNKNOWN_PLATFORM, normalize_platform_name, platforms_from_tags


class TestAssetClassifier:
    """Test category and pegged asset detection"""

    @pytest.fixture
    def classifier(self):
        return AssetClassifier()

    @pytest.mark.parametrize(
        "tags,name,symbol,expected",
        [
            (["stablecoin"], "Tether", "USDT", (STABLECOIN, "USD")),
            (["stablecoin"], "STASIS EURO", "EURS", (STABLECOIN, "EUR")),
            (["eur-stablecoin"], "Some Coin", "ABC", (STABLECOIN, "EUR")),
            (["peggedUSD"], "Tether", "USDT", (STABLECOIN, "USD")),
            (["tokenized-gold"], "PAX Gold", "PAXG", (TOKENIZED_ASSET, "Gold")),
            (["tokenized-commodities"], "Silver Token", "KAG", (TOKENIZED_ASSET, "Silver")),
            (["mineable"], "Bitcoin", "BTC", (OTHER, None)),
        ],
    )
    def test_classify(self, classifier, tags, name, symbol, expected):
        assert tuple(classifier.classify(tags, name, symbol, name.lower())) == expected

    def test_detect_currency_from_name(self, classifier):
        assert classifier.detect_currency("xyz", "Digital Dollar", "") == "USD"
        assert classifier.detect_currency("xyz", "Nothing Here", "") is None


class TestPlatforms:
    """Test platform normalisation"""

    @pytest.mark.parametrize(
        "raw,expected",
        [("eth", "Ethereum"), ("binance-smart-chain", "BSC"), ("TRON", "Tron"), ("", UNKNOWN_PLATFORM), (None, UNKNOWN_PLATFORM)],
    )
    def test_normalize(self, raw, expected):
        assert normalize_platform_name(raw) == expected

    def test_platforms_from_tags(self):
        assert platforms_from_tags(["ethereum-ecosystem", "solana-ecosystem", "ethereum-pow-ecosystem"]) == ["Ethereum", "Solana"]


class TestFormatting:
    """Test display formatting"""

    def test_format_number(self):
        assert format_number(83_000_000_000) == "$83.0B"
        assert format_number(2_500_000) == "$2.5M"
        assert format_number(1_500, dollar=False) == "1.5K"
        assert format_number(12.5) == "$12.50"
        assert format_number(None) == NO_DATA
        assert format_number(float("nan")) == NO_DATA

    def test_format_price_and_percentage(self):
        assert format_price(1.0001) == "$1.0001"
        assert format_price(2300) == "$2,300.00"
        assert format_percentage(66.666) == "66.67%"

    def test_slugify(self):
        assert slugify("BNB Smart Chain") == "bnb-smart-chain"
        assert slugify(None) == ""
