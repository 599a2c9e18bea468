from typing import Dict, List, Literal, Tuple

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

KNOWN_SOURCES: Tuple[str, ...] = ("cmc", "messari", "coingecko", "defillama")


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Logging
    LOG_LEVEL: str = "INFO"
    SLACK_WEBHOOK_URL: str | None = None

    # Refresh scheduling
    UPDATE_INTERVAL_MINUTES: int = 15
    REFRESH_ENABLED: bool = True  # Enable/disable the background refresh loop

    # Sources
    ENABLED_SOURCES: str = "cmc,messari,coingecko,defillama"
    SOURCE_PRIORITY: Dict[str, int] = {}  # JSON override, e.g. {"coingecko": 9}
    INCLUDE_TOKENIZED_ASSETS: bool = True
    FILTER_CHUNK_SIZE: int = 1000

    # CoinMarketCap
    CMC_API_KEY: str | None = None
    CMC_BASE_URL: str = "https://pro-api.coinmarketcap.com"
    CMC_TIMEOUT_SECONDS: float = 15.0
    CMC_MAX_RESULTS: int = 5000
    CMC_PRICE_MIN: float = 0.5
    CMC_PRICE_MAX: float = 2.0

    # Messari
    MESSARI_API_KEY: str | None = None
    MESSARI_BASE_URL: str = "https://data.messari.io/api"
    MESSARI_TIMEOUT_SECONDS: float = 15.0

    # CoinGecko
    COINGECKO_API_KEY: str | None = None
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_TIMEOUT_SECONDS: float = 15.0
    COINGECKO_CATEGORY: str = "stablecoins"
    COINGECKO_PER_PAGE: int = 250
    COINGECKO_MAX_PAGES: int = 4
    COINGECKO_PRICE_MIN: float = 0.5
    COINGECKO_PRICE_MAX: float = 2.0

    # DeFiLlama
    DEFILLAMA_BASE_URL: str = "https://stablecoins.llama.fi"
    DEFILLAMA_TIMEOUT_SECONDS: float = 20.0
    DEFILLAMA_PRICE_MIN: float = 0.5
    DEFILLAMA_PRICE_MAX: float = 2.0
    DEFILLAMA_MIN_MCAP: float = 1_000_000
    DEFILLAMA_MIN_SUPPLY: float = 1_000_000
    DEFILLAMA_EXCLUDED_PEG_TYPES: List[str] = ["peggedBTC"]
    DEFILLAMA_MAX_COINS: int = 200

    # Health monitoring
    HEALTH_ERROR_RATE_THRESHOLD: float = 0.3
    HEALTH_RESPONSE_TIME_THRESHOLD_MS: float = 10_000
    HEALTH_MIN_HEALTHY_SOURCES: int = 1
    HEALTH_RETENTION_DAYS: int = 7

    # Circuit breaker
    CIRCUIT_BREAKER_ENABLED: bool = True
    CIRCUIT_BREAKER_FAILURES: int = 6
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 60.0
    CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES: int = 3

    # Cross-source conflicts
    MAX_CONFLICTS_PER_HOUR: int = 50
    MAX_CONFLICTS_PER_ASSET: int = 5
    CONFLICT_ALERT_THRESHOLD: float = 0.1
    CONFLICT_PENALTY_PER_CONFLICT: float = 0.5
    CONFLICT_PENALTY_CAP: float = 20.0

    # Confidence weights
    CONFIDENCE_MARKET_PRICE_WEIGHT: float = 0.5
    CONFIDENCE_MARKET_MCAP_WEIGHT: float = 0.3
    CONFIDENCE_MARKET_CONSENSUS_WEIGHT: float = 0.2
    CONFIDENCE_SUPPLY_SINGLE_WEIGHT: float = 0.8
    CONFIDENCE_SUPPLY_MULTI_WEIGHT: float = 0.2
    CONFIDENCE_PLATFORM_BASELINE: float = 0.5
    CONFIDENCE_DATAPOINT_SATURATION: int = 6

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Settings":
        for prefix in ("CMC", "COINGECKO", "DEFILLAMA"):
            low = getattr(self, f"{prefix}_PRICE_MIN")
            high = getattr(self, f"{prefix}_PRICE_MAX")
            if low >= high:
                raise ValueError(f"{prefix}_PRICE_MIN must be lower than {prefix}_PRICE_MAX")
        if self.CIRCUIT_BREAKER_FAILURES < 1 or self.CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES < 1:
            raise ValueError("Circuit breaker thresholds must be at least 1")
        if self.UPDATE_INTERVAL_MINUTES < 1:
            raise ValueError("UPDATE_INTERVAL_MINUTES must be at least 1")
        return self

    @property
    def enabled_sources(self) -> List[str]:
        """Enabled source ids, lower-cased, in configured order."""
        return [s.strip().lower() for s in self.ENABLED_SOURCES.split(",") if s.strip()]

    @property
    def update_interval_seconds(self) -> int:
        return self.UPDATE_INTERVAL_MINUTES * 60

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development


settings = Settings()
