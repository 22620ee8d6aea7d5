from contextlib import asynccontextmanager
from datetime import timedelta
import asyncio
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from iptv_catalog.config import settings, setup_logging
from iptv_catalog.database import close_db, init_db
from iptv_catalog.routers import SERVICE_NAME, SERVICE_VERSION, main_router
from iptv_catalog.services.cache_service import CatalogCache, SqliteKeyValueStore
from iptv_catalog.services.library_service import ViewerLibrary
from iptv_catalog.services.network_events import NetworkEventSource
from iptv_catalog.services.refresh_orchestrator import FeedSources, RefreshOrchestrator
from iptv_catalog.services.scheduler_service import RevalidationScheduler
from iptv_catalog.utils.http_fetch import HttpFetcher


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info(f"Starting {SERVICE_NAME}...")

    try:
        logger.info("Initializing database...")
        await init_db()

        store = SqliteKeyValueStore()
        fetcher = HttpFetcher(
            timeout=settings.fetch_timeout_sec,
            max_retries=settings.fetch_max_retries,
            backoff_factor=settings.fetch_backoff_factor,
        )
        network_events = NetworkEventSource()
        orchestrator = RefreshOrchestrator(
            FeedSources.from_settings(settings),
            CatalogCache(store),
            fetcher.fetch,
            freshness=timedelta(hours=settings.cache_freshness_hours),
            parse_timeout_seconds=settings.guide_parse_timeout_sec,
        )
        orchestrator.start(network_events)

        library = ViewerLibrary(store)
        await library.load()

        scheduler = RevalidationScheduler(
            orchestrator,
            settings.revalidate_cron,
            settings.revalidate_misfire_grace_sec,
        )
        scheduler.start()

        app.state.fetcher = fetcher
        app.state.network_events = network_events
        app.state.orchestrator = orchestrator
        app.state.library = library
        app.state.scheduler = scheduler

        # Cold starts block on the network; the API answers /status meanwhile
        app.state.initial_load = asyncio.create_task(orchestrator.load())

        logger.info(f"{SERVICE_NAME} started successfully")
    except Exception as e:
        logger.error(f"Failed to start {SERVICE_NAME}: {e}", exc_info=True)
        raise

    yield

    logger.info(f"Shutting down {SERVICE_NAME}...")

    try:
        app.state.scheduler.shutdown()
        app.state.initial_load.cancel()
        await asyncio.gather(app.state.initial_load, return_exceptions=True)
        await app.state.orchestrator.stop()
        await app.state.fetcher.aclose()
        await close_db()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)

    logger.info(f"{SERVICE_NAME} stopped")


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    # Create a properly serializable error response
    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    """Build the application; tests skip the lifespan and install their own services"""
    app = FastAPI(
        title=SERVICE_NAME,
        version=SERVICE_VERSION,
        lifespan=lifespan if with_lifespan else None,
    )
    app.include_router(main_router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


app = create_app()
