from enum import Enum
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Query

from iptv_catalog.database import check_db
from iptv_catalog.dependencies import (
    get_library,
    get_network_events,
    get_orchestrator,
    get_scheduler,
)
from iptv_catalog.schemas import (
    CategoryListResponse,
    ChannelListResponse,
    ChannelSchema,
    FavoritesResponse,
    NetworkStateRequest,
    ProgressRequest,
    ResumeResponse,
    StatusResponse,
    StreamUrlRequest,
)
from iptv_catalog.services.catalog_builder_service import refresh_current_events
from iptv_catalog.services.catalog_query_service import (
    filter_channels,
    group_by_category,
    index_by_stream_url,
    list_groups,
)
from iptv_catalog.services.library_service import ViewerLibrary
from iptv_catalog.services.network_events import NetworkEvent, NetworkEventSource
from iptv_catalog.services.refresh_orchestrator import (
    CatalogSnapshot,
    FetchTarget,
    RefreshOrchestrator,
)
from iptv_catalog.services.scheduler_service import RevalidationScheduler
from iptv_catalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

main_router = APIRouter()

SERVICE_NAME = "IPTV Catalog Service"
SERVICE_VERSION = "0.1.0"


class Section(str, Enum):
    LIVE = "live"
    MOVIES = "movies"
    SERIES = "series"
    FAVORITES = "favorites"


class OnDemandSection(str, Enum):
    MOVIES = "movies"
    SERIES = "series"


OrchestratorDep = Annotated[RefreshOrchestrator, Depends(get_orchestrator)]
LibraryDep = Annotated[ViewerLibrary, Depends(get_library)]


def _status(snapshot: CatalogSnapshot) -> StatusResponse:
    return StatusResponse(
        load_state=snapshot.load_state.value if snapshot.load_state else None,
        is_loading=snapshot.is_loading,
        is_stale=snapshot.is_stale,
        is_online=snapshot.is_online,
        error=snapshot.error,
        last_updated=snapshot.last_updated,
        targets={target.value: state.value for target, state in snapshot.targets.items()},
    )


def _section_channels(snapshot: CatalogSnapshot, section: Section, library: ViewerLibrary) -> list:
    if section is Section.FAVORITES:
        index = index_by_stream_url(snapshot.live, snapshot.movies, snapshot.series)
        return [index[url] for url in library.list_favorites() if url in index]
    return list(snapshot.section(FetchTarget(section.value)))


@main_router.get("/")
async def root(
    scheduler: Annotated[RevalidationScheduler | None, Depends(get_scheduler)]
) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time() if scheduler else None

    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "next_scheduled_revalidation": next_run.isoformat() if next_run else None,
        "endpoints": {
            "status": "/status - Catalog load status",
            "channels": "/channels/{section} - Channels of a catalog section",
            "refresh": "/refresh - Retry a full blocking refresh (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(
    scheduler: Annotated[RevalidationScheduler | None, Depends(get_scheduler)]
) -> dict:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time() if scheduler else None
    database_ok = await check_db()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
        "scheduler_running": scheduler.running if scheduler else False,
        "next_revalidation": next_run.isoformat() if next_run else None
    }


@main_router.get("/status", response_model=StatusResponse)
async def get_status(orchestrator: OrchestratorDep) -> StatusResponse:
    """Loading, staleness and error state for UI rendering"""
    return _status(orchestrator.snapshot)


@main_router.post("/refresh", response_model=StatusResponse)
async def trigger_refresh(orchestrator: OrchestratorDep) -> StatusResponse:
    """
    Retry action: re-run the full blocking refresh

    Fetches every target and returns the resulting status
    """
    logger.info("Manual refresh triggered via API")
    snapshot = await orchestrator.retry()
    return _status(snapshot)


@main_router.post("/network", response_model=StatusResponse)
async def update_network_state(
    request: NetworkStateRequest,
    network_events: Annotated[NetworkEventSource, Depends(get_network_events)],
    orchestrator: OrchestratorDep,
) -> StatusResponse:
    """Publish a platform connectivity change"""
    network_events.publish(NetworkEvent.ONLINE if request.online else NetworkEvent.OFFLINE)
    return _status(orchestrator.snapshot)


@main_router.get("/channels/{section}", response_model=ChannelListResponse)
async def get_channels(
    section: Section,
    orchestrator: OrchestratorDep,
    library: LibraryDep,
    group: str | None = None,
    search: str | None = None,
    include_schedule: bool = False,
) -> ChannelListResponse:
    """
    Channels of one catalog section

    The airing event is resolved at request time.
    """
    channels = _section_channels(orchestrator.snapshot, section, library)
    channels = filter_channels(channels, group=group, search=search, favorites=library.favorites)
    channels = refresh_current_events(channels, utc_now())

    return ChannelListResponse(
        section=section.value,
        total=len(channels),
        channels=[
            ChannelSchema.from_channel(channel, include_schedule=include_schedule)
            for channel in channels
        ],
    )


@main_router.get("/channels/{section}/groups")
async def get_groups(
    section: Section,
    orchestrator: OrchestratorDep,
    library: LibraryDep,
) -> list[str]:
    """Group names of a catalog section"""
    return list_groups(_section_channels(orchestrator.snapshot, section, library))


@main_router.get("/favorites", response_model=FavoritesResponse)
async def get_favorites(library: LibraryDep) -> FavoritesResponse:
    return FavoritesResponse(favorites=library.list_favorites())


@main_router.post("/favorites/toggle", response_model=FavoritesResponse)
async def toggle_favorite(request: StreamUrlRequest, library: LibraryDep) -> FavoritesResponse:
    """Add the item to favorites, or remove it when it already is one"""
    await library.toggle_favorite(request.stream_url)
    return FavoritesResponse(favorites=library.list_favorites())


@main_router.put("/progress", response_model=ResumeResponse)
async def record_progress(request: ProgressRequest, library: LibraryDep) -> ResumeResponse:
    """Store the playback position of an on-demand item"""
    await library.record_progress(request.stream_url, request.position_sec, utc_now())
    return ResumeResponse(
        stream_url=request.stream_url,
        resume_position_sec=library.resume_position(request.stream_url),
    )


@main_router.get("/progress", response_model=ResumeResponse)
async def get_resume_position(
    library: LibraryDep,
    stream_url: Annotated[str, Query(min_length=1)],
) -> ResumeResponse:
    """Position to resume from, None when playback should start from the beginning"""
    return ResumeResponse(stream_url=stream_url, resume_position_sec=library.resume_position(stream_url))


@main_router.delete("/progress", response_model=ResumeResponse)
async def clear_progress(
    library: LibraryDep,
    stream_url: Annotated[str, Query(min_length=1)],
) -> ResumeResponse:
    """Start over: forget the stored position"""
    await library.clear_progress(stream_url)
    return ResumeResponse(stream_url=stream_url, resume_position_sec=None)


@main_router.get("/recently-watched/{section}", response_model=ChannelListResponse)
async def get_recently_watched(
    section: OnDemandSection,
    orchestrator: OrchestratorDep,
    library: LibraryDep,
) -> ChannelListResponse:
    """Recently watched on-demand items of a section, most recent first"""
    items = orchestrator.snapshot.section(FetchTarget(section.value))
    watched = library.recently_watched(index_by_stream_url(items))
    return ChannelListResponse(
        section=section.value,
        total=len(watched),
        channels=[ChannelSchema.from_channel(channel, include_schedule=False) for channel in watched],
    )


@main_router.get("/ondemand/{section}/categories", response_model=CategoryListResponse)
async def get_categories(section: OnDemandSection, orchestrator: OrchestratorDep) -> CategoryListResponse:
    """On-demand items grouped by category; uncategorized items go under Other"""
    items = orchestrator.snapshot.section(FetchTarget(section.value))
    return CategoryListResponse(
        section=section.value,
        categories={
            name: [ChannelSchema.from_channel(item, include_schedule=False) for item in group]
            for name, group in group_by_category(items).items()
        },
    )
