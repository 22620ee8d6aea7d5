"""
Persistent storage for the catalog

This module contains the key-value store the service persists through and the
live channel cache built on top of it.
"""
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError

from iptv_catalog.database import session_scope
from iptv_catalog.exceptions import StorageError
from iptv_catalog.models import StoredValue
from iptv_catalog.schemas import CacheEnvelopeSchema
from iptv_catalog.services.fetch_types import CacheEnvelope, EnrichedChannel
from iptv_catalog.utils.timezone import DateFormatError, parse_iso8601_to_utc


logger = logging.getLogger(__name__)

LIVE_CHANNELS_KEY = "iptv_live_channels"
LAST_UPDATED_KEY = "iptv_last_updated"
LEGACY_KEYS = ("iptv_movies", "iptv_series")


class KeyValueStore(Protocol):
    """String store used for everything the service persists"""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """Key-value store backed by the SQLite database."""

    async def get(self, key: str) -> str | None:
        try:
            async with session_scope(begin=False) as session:
                result = await session.execute(
                    select(StoredValue.value).where(StoredValue.key == key)
                )
                return result.scalar_one_or_none()
        except (SQLAlchemyError, RuntimeError) as exc:
            raise StorageError(f"Failed to read '{key}': {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        stmt = text(
            """
            INSERT INTO stored_values (key, value, updated_at)
            VALUES (:key, :value, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """
        )
        try:
            async with session_scope() as session:
                await session.execute(stmt, {"key": key, "value": value})
        except (SQLAlchemyError, RuntimeError) as exc:
            raise StorageError(f"Failed to write '{key}': {exc}") from exc
        logger.debug("Stored %s (%s bytes)", key, len(value))

    async def remove(self, key: str) -> None:
        try:
            async with session_scope() as session:
                await session.execute(delete(StoredValue).where(StoredValue.key == key))
        except (SQLAlchemyError, RuntimeError) as exc:
            raise StorageError(f"Failed to remove '{key}': {exc}") from exc


class CatalogCache:
    """
    Live channel cache.

    The envelope is always replaced as a whole. Read failures and corrupt
    entries are reported as a cache miss.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def load(self) -> CacheEnvelope | None:
        """
        Read the cached live channels

        Returns:
            The envelope, or None when there is no usable cache
        """
        try:
            raw = await self._store.get(LIVE_CHANNELS_KEY)
        except StorageError as exc:
            logger.error("Failed to read channel cache: %s", exc)
            return None

        if not raw:
            logger.info("No cached live channels")
            return None

        try:
            envelope = CacheEnvelopeSchema.model_validate_json(raw).to_envelope()
        except ValidationError as exc:
            logger.error("Cached live channels are corrupt, discarding: %s", exc)
            await self._remove_quietly(LIVE_CHANNELS_KEY)
            return None

        cached_at = await self._load_last_updated()
        if cached_at is not None:
            envelope = CacheEnvelope(channels=envelope.channels, fetched_at=cached_at)

        logger.info(
            "Loaded %s cached live channels (fetched at %s)",
            len(envelope.channels),
            envelope.fetched_at.isoformat(),
        )
        return envelope

    async def save(self, channels: Sequence[EnrichedChannel], fetched_at: datetime) -> None:
        """
        Replace the cached live channels

        Raises:
            StorageError: If the store rejects the write
        """
        envelope = CacheEnvelope(channels=tuple(channels), fetched_at=fetched_at)
        payload = CacheEnvelopeSchema.from_envelope(envelope).model_dump_json()

        await self._store.set(LIVE_CHANNELS_KEY, payload)
        await self._store.set(LAST_UPDATED_KEY, fetched_at.isoformat())
        logger.info("Cached %s live channels", len(envelope.channels))

    async def drop_legacy_entries(self) -> None:
        """Remove cache keys older releases stored on-demand lists under"""
        for key in LEGACY_KEYS:
            await self._remove_quietly(key)

    async def _load_last_updated(self) -> datetime | None:
        try:
            raw = await self._store.get(LAST_UPDATED_KEY)
        except StorageError as exc:
            logger.warning("Failed to read last refresh time: %s", exc)
            return None
        if not raw:
            return None
        try:
            return parse_iso8601_to_utc(raw)
        except DateFormatError:
            logger.warning("Ignoring invalid last refresh time %r", raw)
            return None

    async def _remove_quietly(self, key: str) -> None:
        try:
            await self._store.remove(key)
        except StorageError as exc:
            logger.error("Failed to remove %s: %s", key, exc)
