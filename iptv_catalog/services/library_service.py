"""
Viewer Library Service

Favorites and on-demand playback progress, persisted through the key-value store.
Storage failures are logged; the in-memory state stays authoritative for the
running process.
"""
import logging
from collections.abc import Mapping
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from iptv_catalog.exceptions import StorageError
from iptv_catalog.schemas import PlaybackProgressSchema
from iptv_catalog.services.cache_service import KeyValueStore
from iptv_catalog.services.fetch_types import EnrichedChannel

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favoriteChannels"
PROGRESS_KEY = "iptv_vod_progress"
RESUME_THRESHOLD_SEC = 10.0

_favorites_adapter = TypeAdapter(list[str])
_progress_adapter = TypeAdapter(dict[str, PlaybackProgressSchema])


class ViewerLibrary:
    """Favorites and playback progress for the single local viewer"""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._favorites: list[str] = []
        self._progress: dict[str, PlaybackProgressSchema] = {}

    async def load(self) -> None:
        """Read favorites and progress from storage"""
        self._favorites = await self._read(FAVORITES_KEY, _favorites_adapter, [])
        self._progress = await self._read(PROGRESS_KEY, _progress_adapter, {})
        logger.info(
            "Library loaded: %s favorites, %s progress entries",
            len(self._favorites),
            len(self._progress),
        )

    @property
    def favorites(self) -> frozenset[str]:
        return frozenset(self._favorites)

    def list_favorites(self) -> list[str]:
        return list(self._favorites)

    async def toggle_favorite(self, stream_url: str) -> bool:
        """
        Add or remove a favorite

        Returns:
            True when the item is a favorite after the call
        """
        if stream_url in self._favorites:
            self._favorites = [url for url in self._favorites if url != stream_url]
            is_favorite = False
        else:
            self._favorites = [*self._favorites, stream_url]
            is_favorite = True

        await self._write(FAVORITES_KEY, _favorites_adapter.dump_json(self._favorites).decode("utf-8"))
        return is_favorite

    async def record_progress(self, stream_url: str, position_sec: float, now: datetime) -> None:
        """Store the playback position of an on-demand item"""
        self._progress = {
            **self._progress,
            stream_url: PlaybackProgressSchema(progress=position_sec, last_watched=now),
        }
        await self._write_progress()

    async def clear_progress(self, stream_url: str) -> None:
        """Forget the playback position, used when the viewer starts over"""
        if stream_url not in self._progress:
            return
        self._progress = {url: entry for url, entry in self._progress.items() if url != stream_url}
        await self._write_progress()

    def resume_position(self, stream_url: str) -> float | None:
        """Position to offer resuming from; short progress is not worth a prompt"""
        entry = self._progress.get(stream_url)
        if entry is None or entry.progress <= RESUME_THRESHOLD_SEC:
            return None
        return entry.progress

    def recently_watched(self, index: Mapping[str, EnrichedChannel]) -> list[EnrichedChannel]:
        """
        Watched items, most recent first

        Args:
            index: Catalog lookup by stream URL; items no longer listed are dropped
        """
        ordered = sorted(
            self._progress.items(),
            key=lambda item: item[1].last_watched,
            reverse=True,
        )
        return [index[url] for url, _ in ordered if url in index]

    async def _write_progress(self) -> None:
        payload = _progress_adapter.dump_json(self._progress).decode("utf-8")
        await self._write(PROGRESS_KEY, payload)

    async def _read(self, key: str, adapter: TypeAdapter, default):
        try:
            raw = await self._store.get(key)
        except StorageError as exc:
            logger.error("Failed to read %s: %s", key, exc)
            return default
        if not raw:
            return default
        try:
            return adapter.validate_json(raw)
        except ValidationError as exc:
            logger.error("Stored %s is corrupt, ignoring: %s", key, exc)
            return default

    async def _write(self, key: str, value: str) -> None:
        try:
            await self._store.set(key, value)
        except StorageError as exc:
            logger.error("Failed to save %s: %s", key, exc)
