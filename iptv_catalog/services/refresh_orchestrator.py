"""
Refresh Orchestrator

Coordinates fetching of the live, movies and series targets, the live channel
cache and the catalog state handed to the UI layer.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Literal

from iptv_catalog.exceptions import CatalogError, NetworkError, StorageError
from iptv_catalog.services.cache_service import CatalogCache
from iptv_catalog.services.catalog_builder_service import build_catalog, refresh_current_events
from iptv_catalog.services.feed_downloader_service import FetchFunc, fetch_guides, fetch_playlist
from iptv_catalog.services.fetch_types import ContentKind, EnrichedChannel
from iptv_catalog.services.network_events import NetworkEvent, NetworkEventSource
from iptv_catalog.utils.logging_helpers import log_section_end, log_section_start, log_target_result
from iptv_catalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS = timedelta(hours=6)
OFFLINE_MESSAGE = (
    "You are offline and no cached channels are available. "
    "Check your internet connection."
)


class FetchTarget(str, Enum):
    LIVE = "live"
    MOVIES = "movies"
    SERIES = "series"


ALL_TARGETS = (FetchTarget.LIVE, FetchTarget.MOVIES, FetchTarget.SERIES)
ONDEMAND_TARGETS = (FetchTarget.MOVIES, FetchTarget.SERIES)


class TargetState(str, Enum):
    ABSENT = "absent"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class LoadState(str, Enum):
    COLD_START = "cold-start"
    CACHE_HIT_FRESH = "cache-hit-fresh"
    CACHE_HIT_STALE = "cache-hit-stale"
    OFFLINE = "offline"


def _target_map(states: Mapping[FetchTarget, TargetState]) -> Mapping[FetchTarget, TargetState]:
    return MappingProxyType(dict(states))


@dataclass(frozen=True, slots=True)
class FeedSources:
    """Feed URLs of one catalog; an empty playlist URL disables its target."""
    live_playlist_url: str
    movies_playlist_url: str
    series_playlist_url: str
    guide_urls: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings) -> FeedSources:
        return cls(
            live_playlist_url=settings.live_playlist_url,
            movies_playlist_url=settings.movies_playlist_url,
            series_playlist_url=settings.series_playlist_url,
            guide_urls=tuple(settings.guide_sources or ()),
        )

    def playlist_url(self, target: FetchTarget) -> str:
        return {
            FetchTarget.LIVE: self.live_playlist_url,
            FetchTarget.MOVIES: self.movies_playlist_url,
            FetchTarget.SERIES: self.series_playlist_url,
        }[target]


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """Immutable view of the catalog handed to consumers."""
    live: tuple[EnrichedChannel, ...] = ()
    movies: tuple[EnrichedChannel, ...] = ()
    series: tuple[EnrichedChannel, ...] = ()
    targets: Mapping[FetchTarget, TargetState] = field(
        default_factory=lambda: _target_map({target: TargetState.ABSENT for target in ALL_TARGETS})
    )
    load_state: LoadState | None = None
    is_loading: bool = False
    is_stale: bool = False
    is_online: bool = True
    error: str | None = None
    last_updated: datetime | None = None

    def section(self, target: FetchTarget) -> tuple[EnrichedChannel, ...]:
        return getattr(self, target.value)


@dataclass(slots=True)
class TargetResult:
    target: FetchTarget
    status: Literal["ready", "failed"]
    started_at: datetime
    completed_at: datetime
    channels: list[EnrichedChannel] = field(default_factory=list)
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())


SnapshotListener = Callable[[CatalogSnapshot], None]


class RefreshOrchestrator:
    """
    Owns the catalog state and decides when to serve cache, fetch, or both.

    Targets are fetched concurrently and settle independently; one failing
    target never cancels or fails the others. Every state change replaces the
    snapshot and is pushed to subscribers.
    """

    def __init__(
        self,
        sources: FeedSources,
        cache: CatalogCache,
        fetch: FetchFunc,
        *,
        clock: Callable[[], datetime] = utc_now,
        freshness: timedelta = DEFAULT_FRESHNESS,
        parse_timeout_seconds: int | None = None,
        online: bool = True,
    ) -> None:
        self._sources = sources
        self._cache = cache
        self._fetch = fetch
        self._clock = clock
        self._freshness = freshness
        self._parse_timeout = parse_timeout_seconds
        self._snapshot = CatalogSnapshot(is_online=online)
        self._listeners: list[SnapshotListener] = []
        self._background: set[asyncio.Task] = set()
        self._unsubscribe_network: Callable[[], None] | None = None

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener; returns the unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, network_events: NetworkEventSource) -> None:
        """Start following network state changes, seeded from the last known state"""
        if network_events.last_event is not None:
            self._publish(is_online=network_events.last_event is NetworkEvent.ONLINE)
        self._unsubscribe_network = network_events.subscribe(self.handle_network_event)

    async def stop(self) -> None:
        """Stop following events and abandon outstanding background work"""
        if self._unsubscribe_network:
            self._unsubscribe_network()
            self._unsubscribe_network = None

        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def is_stale(self, cached_at: datetime, now: datetime) -> bool:
        return now - cached_at >= self._freshness

    async def load(self) -> CatalogSnapshot:
        """
        Initial load: serve the cache when there is one, then fetch as needed.

        Returns:
            Snapshot after the cache was served, or after the blocking
            refresh on a cold start
        """
        log_section_start(logger, "catalog load")
        envelope = await self._cache.load()
        now = self._clock()

        is_stale = True
        if envelope is not None:
            is_stale = self.is_stale(envelope.fetched_at, now)
            targets = dict(self._snapshot.targets)
            targets[FetchTarget.LIVE] = TargetState.READY
            self._publish(
                live=tuple(refresh_current_events(envelope.channels, now)),
                last_updated=envelope.fetched_at,
                is_stale=is_stale,
                targets=_target_map(targets),
            )

        if not self._snapshot.is_online:
            if envelope is None:
                logger.error("Offline and no cached channels are available")
                self._publish(load_state=LoadState.OFFLINE, is_loading=False, error=OFFLINE_MESSAGE)
            else:
                logger.info("Offline, serving %s cached live channels", len(envelope.channels))
                self._publish(
                    load_state=LoadState.CACHE_HIT_STALE if is_stale else LoadState.CACHE_HIT_FRESH,
                    is_loading=False,
                    error=None,
                )
            log_section_end(logger, "catalog load")
            return self._snapshot

        if envelope is None:
            logger.info("Fetching all data. Reason: no cache")
            self._publish(load_state=LoadState.COLD_START)
            await self.refresh()
        elif is_stale:
            logger.info("Fetching all data in background. Reason: cache stale")
            self._publish(load_state=LoadState.CACHE_HIT_STALE, is_loading=False, error=None)
            self.revalidate()
        else:
            logger.info("Cached live channels are fresh. Fetching on-demand content in background")
            self._publish(load_state=LoadState.CACHE_HIT_FRESH, is_loading=False, error=None)
            self.revalidate(ONDEMAND_TARGETS)

        log_section_end(logger, "catalog load")
        return self._snapshot

    async def retry(self) -> CatalogSnapshot:
        """User retry action: full blocking refresh"""
        logger.info("Retry requested")
        return await self.refresh()

    def revalidate(self, targets: Iterable[FetchTarget] = ALL_TARGETS) -> asyncio.Task:
        """Schedule a background refresh; its errors are logged, never surfaced"""
        return self._track(self.refresh(background=True, targets=tuple(targets)), "background refresh")

    async def wait_for_background(self) -> None:
        """Wait until no background work is outstanding"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def handle_network_event(self, event: NetworkEvent) -> None:
        """Translate platform connectivity changes into state transitions"""
        if event is NetworkEvent.OFFLINE:
            self._publish(is_online=False)
            return

        previous = self._snapshot
        self._publish(is_online=True)
        if previous.load_state is LoadState.OFFLINE or (previous.load_state is not None and previous.is_stale):
            logger.info("Back online, reloading catalog")
            self._track(self.load(), "reload after reconnect")

    async def refresh(
        self,
        *,
        background: bool = False,
        targets: Iterable[FetchTarget] = ALL_TARGETS,
    ) -> CatalogSnapshot:
        """
        Fetch the given targets concurrently and publish the results

        Args:
            background: Background refreshes never block the UI or set an error
            targets: Targets to fetch

        Returns:
            Snapshot after all targets settled
        """
        targets = tuple(targets)
        section = f"{'background' if background else 'foreground'} refresh of {', '.join(t.value for t in targets)}"
        log_section_start(logger, section)

        states = dict(self._snapshot.targets)
        for target in targets:
            states[target] = TargetState.LOADING
        changes: dict = {"targets": _target_map(states)}
        if not background:
            changes.update(is_loading=True, error=None)
            if self._snapshot.load_state in (None, LoadState.OFFLINE):
                changes["load_state"] = LoadState.COLD_START
        self._publish(**changes)

        tasks = [asyncio.create_task(self._run_target(target)) for target in targets]
        results: list[TargetResult] = await asyncio.gather(*tasks)

        now = self._clock()
        states = dict(self._snapshot.targets)
        updates: dict = {}
        for result in results:
            if result.status == "ready":
                states[result.target] = TargetState.READY
                updates[result.target.value] = tuple(result.channels)
            else:
                states[result.target] = TargetState.FAILED
            log_target_result(
                logger,
                result.target.value,
                result.status,
                result.duration_seconds,
                len(result.channels),
            )

        live = next((r for r in results if r.target is FetchTarget.LIVE and r.status == "ready"), None)
        if live is not None:
            await self._persist_live(live.channels, now)
            updates.update(last_updated=now, is_stale=False)

        await self._cache.drop_legacy_entries()

        succeeded = any(result.status == "ready" for result in results)
        if not background:
            updates["is_loading"] = False
            updates["error"] = None if succeeded else self._aggregate_error(results)
        elif succeeded:
            updates["error"] = None
            if live is not None and self._snapshot.load_state in (LoadState.OFFLINE, LoadState.COLD_START):
                updates["load_state"] = LoadState.CACHE_HIT_FRESH
        else:
            logger.warning("Background refresh: no target could be loaded")

        self._publish(targets=_target_map(states), **updates)
        log_section_end(logger, section)
        return self._snapshot

    async def _run_target(self, target: FetchTarget) -> TargetResult:
        started_at = self._clock()
        try:
            if target is FetchTarget.LIVE:
                channels = await self._fetch_live()
            else:
                channels = await self._fetch_ondemand(target)
        except CatalogError as exc:
            logger.error("[%s] Failed to load: %s", target.value, exc)
            return TargetResult(target, "failed", started_at, self._clock(), error=str(exc))
        except Exception as exc:
            logger.error("[%s] Unexpected error while loading: %s", target.value, exc, exc_info=True)
            return TargetResult(target, "failed", started_at, self._clock(), error=str(exc))

        return TargetResult(target, "ready", started_at, self._clock(), channels=channels)

    async def _fetch_live(self) -> list[EnrichedChannel]:
        url = self._sources.live_playlist_url
        if not url:
            raise NetworkError("No live playlist configured")

        records = await fetch_playlist(self._fetch, url, ContentKind.LIVE)
        guide = await fetch_guides(
            self._fetch,
            self._sources.guide_urls,
            parse_timeout_seconds=self._parse_timeout,
        )
        return build_catalog(records, guide, self._clock(), kind=ContentKind.LIVE)

    async def _fetch_ondemand(self, target: FetchTarget) -> list[EnrichedChannel]:
        url = self._sources.playlist_url(target)
        if not url:
            raise NetworkError(f"No {target.value} playlist configured")

        records = await fetch_playlist(self._fetch, url, ContentKind.ONDEMAND)
        return build_catalog(records, {}, self._clock(), kind=ContentKind.ONDEMAND)

    async def _persist_live(self, channels: list[EnrichedChannel], fetched_at: datetime) -> None:
        try:
            await self._cache.save(channels, fetched_at)
        except StorageError as exc:
            logger.error("Failed to cache live channels: %s", exc)

    @staticmethod
    def _aggregate_error(results: list[TargetResult]) -> str:
        first_error = next((result.error for result in results if result.error), None)
        return (
            f"Content lists could not be loaded: {first_error or 'unknown error'}. "
            "Check your internet connection and try again."
        )

    def _track(self, coro, description: str) -> asyncio.Task:
        async def runner():
            try:
                await coro
            except Exception as exc:
                logger.error("%s failed: %s", description.capitalize(), exc, exc_info=True)

        task = asyncio.create_task(runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _publish(self, **changes) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as exc:
                logger.error("Snapshot listener failed: %s", exc, exc_info=True)
