# Ingestion package
from stablewatch.ingestion.base import BaseSource, SourceCapabilities, SourceFetchError, SourcePayload
from stablewatch.ingestion.cmc_source import CmcSource
from stablewatch.ingestion.coingecko_source import CoinGeckoSource
from stablewatch.ingestion.defillama_source import DefiLlamaSource
from stablewatch.ingestion.messari_source import MessariSource
from stablewatch.ingestion.registry import SourceRegistry

__all__ = [
    "BaseSource",
    "SourceCapabilities",
    "SourceFetchError",
    "SourcePayload",
    "CmcSource",
    "CoinGeckoSource",
    "DefiLlamaSource",
    "MessariSource",
    "SourceRegistry",
]
