from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from fastapi import FastAPI

from stablewatch.api.routes import (
    health_router,
    metrics_router,
    platforms_router,
    refresh_router,
    sources_router,
    stablecoins_router,
)
from stablewatch.core.config import settings
from stablewatch.core.logging import get_logger
from stablewatch.services.stablecoin_service import StablecoinDataService


log = get_logger("app")

CLEANUP_INTERVAL_SECONDS = 3600

# Background task handles
_refresh_task: Optional[asyncio.Task] = None
_cleanup_task: Optional[asyncio.Task] = None


async def run_refresh(service: StablecoinDataService) -> None:
    """Run one refresh cycle and log its outcome."""
    try:
        result = await service.refresh_data()
        for source, outcome in result["source_results"].items():
            if outcome.get("success"):
                log.info(f"Refresh {source}: {outcome.get('records', 0)} records")
            else:
                log.warning(f"Refresh {source}: failed - {outcome.get('error', 'unknown error')}")
        if result["success"]:
            log.info(f"Refresh completed: {result['stablecoins_updated']} stablecoins")
        else:
            log.warning(f"Refresh completed with errors: {result['errors']}")
    except Exception as exc:
        log.exception(f"Refresh cycle failed: {exc}")


async def scheduled_refresh_task(service: StablecoinDataService) -> None:
    """Background task that refreshes data at the configured interval."""
    interval = settings.update_interval_seconds
    log.info(f"Scheduled refresh task started (interval: {interval}s)")

    # Run immediately on startup
    await run_refresh(service)

    while True:
        try:
            await asyncio.sleep(interval)
            await run_refresh(service)
        except asyncio.CancelledError:
            log.info("Scheduled refresh task cancelled")
            break
        except Exception as exc:
            log.exception(f"Scheduled refresh task error: {exc}")


async def scheduled_cleanup_task(service: StablecoinDataService) -> None:
    """Prune health samples and alerts past the retention window."""
    while True:
        try:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            service.health_monitor.cleanup_old_data()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            log.exception(f"Health cleanup failed: {exc}")


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _refresh_task, _cleanup_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    service = StablecoinDataService.create_default(settings)
    app.state.service = service
    active = [s.get_source_id() for s in service.registry.get_active()]
    log.info(f"Active sources: {active or 'none'}")

    if settings.REFRESH_ENABLED:
        log.info("Starting scheduled refresh background task...")
        _refresh_task = asyncio.create_task(scheduled_refresh_task(service))
    else:
        log.info("Scheduled refresh is disabled (REFRESH_ENABLED=false)")
    _cleanup_task = asyncio.create_task(scheduled_cleanup_task(service))

    yield

    log.info("Shutting down services...")
    await _cancel(_refresh_task)
    await _cancel(_cleanup_task)
    _refresh_task = _cleanup_task = None
    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="Stablewatch",
    description="Multi-source stablecoin market data aggregation",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    # Debug mode only in development
    debug=settings.debug_enabled,
)


app.include_router(stablecoins_router)
app.include_router(platforms_router)
app.include_router(metrics_router)
app.include_router(sources_router)
app.include_router(health_router)
app.include_router(refresh_router)
