"""
Shared dataclasses used across the catalog pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ContentKind(str, Enum):
    LIVE = "live"
    ONDEMAND = "ondemand"


@dataclass(frozen=True, slots=True)
class GuideEvent:
    """A single programme from a guide feed, times in UTC."""
    title: str
    start_time: datetime
    end_time: datetime
    synopsis: str | None = None
    cast: tuple[str, ...] = ()

    @property
    def dedup_key(self) -> tuple[datetime, str]:
        return self.start_time, self.title

    def is_airing(self, now: datetime) -> bool:
        return self.start_time <= now < self.end_time


# guide channel id -> events sorted by start_time
GuideTimeline = dict[str, list[GuideEvent]]


@dataclass(frozen=True, slots=True)
class ChannelRecord:
    """One playlist entry after name normalization."""
    name: str
    stream_url: str
    logo_url: str | None = None
    group_name: str | None = None
    guide_channel_id: str | None = None
    guide_name: str | None = None
    kind: ContentKind = ContentKind.LIVE


@dataclass(frozen=True, slots=True)
class EnrichedChannel:
    """A channel record joined with its guide schedule."""
    record: ChannelRecord
    schedule: tuple[GuideEvent, ...] = ()
    current_event: GuideEvent | None = None

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def stream_url(self) -> str:
        return self.record.stream_url

    @property
    def group_name(self) -> str | None:
        return self.record.group_name

    @property
    def kind(self) -> ContentKind:
        return self.record.kind


@dataclass(frozen=True, slots=True)
class CacheEnvelope:
    """Persisted snapshot of the live catalog."""
    channels: tuple[EnrichedChannel, ...]
    fetched_at: datetime


__all__ = [
    "CacheEnvelope",
    "ChannelRecord",
    "ContentKind",
    "EnrichedChannel",
    "GuideEvent",
    "GuideTimeline",
]
