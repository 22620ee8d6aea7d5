from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from iptv_catalog.services.fetch_types import (
    CacheEnvelope,
    ChannelRecord,
    ContentKind,
    EnrichedChannel,
    GuideEvent,
)


class GuideEventSchema(BaseModel):
    """Guide event data model"""
    title: str
    start_time: datetime = Field(..., description="UTC start time")
    end_time: datetime = Field(..., description="UTC end time")
    synopsis: str | None = None
    cast: list[str] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("event times must be timezone-aware")
        return v

    @classmethod
    def from_event(cls, event: GuideEvent) -> "GuideEventSchema":
        return cls(
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
            synopsis=event.synopsis,
            cast=list(event.cast),
        )

    def to_event(self) -> GuideEvent:
        return GuideEvent(
            title=self.title,
            start_time=self.start_time,
            end_time=self.end_time,
            synopsis=self.synopsis,
            cast=tuple(self.cast),
        )


class ChannelSchema(BaseModel):
    """Channel data model"""
    name: str = Field(..., description="Normalized display name")
    stream_url: str = Field(..., description="Playback URL, unique across the catalog")
    logo_url: str | None = None
    group_name: str | None = None
    guide_channel_id: str | None = None
    guide_name: str | None = None
    kind: ContentKind = ContentKind.LIVE
    current_event: GuideEventSchema | None = None
    schedule: list[GuideEventSchema] = Field(default_factory=list)

    @classmethod
    def from_channel(cls, channel: EnrichedChannel, *, include_schedule: bool = True) -> "ChannelSchema":
        record = channel.record
        return cls(
            name=record.name,
            stream_url=record.stream_url,
            logo_url=record.logo_url,
            group_name=record.group_name,
            guide_channel_id=record.guide_channel_id,
            guide_name=record.guide_name,
            kind=record.kind,
            current_event=GuideEventSchema.from_event(channel.current_event) if channel.current_event else None,
            schedule=[GuideEventSchema.from_event(event) for event in channel.schedule] if include_schedule else [],
        )

    def to_channel(self) -> EnrichedChannel:
        return EnrichedChannel(
            record=ChannelRecord(
                name=self.name,
                stream_url=self.stream_url,
                logo_url=self.logo_url,
                group_name=self.group_name,
                guide_channel_id=self.guide_channel_id,
                guide_name=self.guide_name,
                kind=self.kind,
            ),
            schedule=tuple(event.to_event() for event in self.schedule),
            current_event=self.current_event.to_event() if self.current_event else None,
        )


class CacheEnvelopeSchema(BaseModel):
    """Persisted shape of the live channel cache"""
    channels: list[ChannelSchema]
    fetched_at: datetime

    @field_validator("fetched_at")
    @classmethod
    def validate_aware(cls, v: datetime) -> datetime:
        """Cached timestamps must carry a timezone"""
        if v.tzinfo is None:
            raise ValueError("fetched_at must be timezone-aware")
        return v

    @classmethod
    def from_envelope(cls, envelope: CacheEnvelope) -> "CacheEnvelopeSchema":
        return cls(
            channels=[ChannelSchema.from_channel(channel) for channel in envelope.channels],
            fetched_at=envelope.fetched_at,
        )

    def to_envelope(self) -> CacheEnvelope:
        return CacheEnvelope(
            channels=tuple(channel.to_channel() for channel in self.channels),
            fetched_at=self.fetched_at,
        )


class PlaybackProgressSchema(BaseModel):
    """Stored playback position for one on-demand item"""
    progress: float = Field(..., ge=0, description="Position in seconds")
    last_watched: datetime


class StatusResponse(BaseModel):
    """Catalog status for UI state rendering"""
    load_state: str | None
    is_loading: bool
    is_stale: bool
    is_online: bool
    error: str | None
    last_updated: datetime | None
    targets: dict[str, str]


class ChannelListResponse(BaseModel):
    """Channels of one catalog section"""
    section: str
    total: int
    channels: list[ChannelSchema]


class NetworkStateRequest(BaseModel):
    """Platform network state change"""
    online: bool


class StreamUrlRequest(BaseModel):
    """Request addressing a single catalog item"""
    stream_url: str = Field(..., min_length=1)


class ProgressRequest(StreamUrlRequest):
    """Playback position update"""
    position_sec: float = Field(..., ge=0)


class ResumeResponse(BaseModel):
    """Resume position for an item, None when playback should start over"""
    stream_url: str
    resume_position_sec: float | None


class CategoryListResponse(BaseModel):
    """On-demand items of one section grouped by category"""
    section: str
    categories: dict[str, list[ChannelSchema]]


class FavoritesResponse(BaseModel):
    """Favorite stream URLs"""
    favorites: list[str]
