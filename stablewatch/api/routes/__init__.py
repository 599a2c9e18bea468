from stablewatch.api.routes.health import router as health_router
from stablewatch.api.routes.metrics import router as metrics_router
from stablewatch.api.routes.platforms import router as platforms_router
from stablewatch.api.routes.refresh import router as refresh_router
from stablewatch.api.routes.sources import router as sources_router
from stablewatch.api.routes.stablecoins import router as stablecoins_router

__all__ = [
    "health_router",
    "metrics_router",
    "platforms_router",
    "refresh_router",
    "sources_router",
    "stablecoins_router",
]
