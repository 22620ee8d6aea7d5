"""
Catalog Builder

Joins playlist records with merged guide data. Every function here takes
`now` explicitly so results depend only on the arguments.
"""
import dataclasses
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from iptv_catalog.services.fetch_types import (
    ChannelRecord,
    ContentKind,
    EnrichedChannel,
    GuideEvent,
    GuideTimeline,
)
from iptv_catalog.utils.timezone import ensure_aware

logger = logging.getLogger(__name__)


def resolve_current_event(schedule: Iterable[GuideEvent], now: datetime) -> GuideEvent | None:
    """Return the first event airing at `now`, if any"""
    for event in schedule:
        if event.is_airing(now):
            return event
    return None


def build_catalog(
    records: Sequence[ChannelRecord],
    guide: GuideTimeline,
    now: datetime,
    kind: ContentKind | None = None,
) -> list[EnrichedChannel]:
    """
    Attach guide schedules and the airing event to playlist records

    Args:
        records: Parsed playlist records
        guide: Merged guide timeline
        now: Timezone-aware reference time for the current event
        kind: When given, every record is tagged with this content kind

    Returns:
        One enriched channel per record, in record order
    """
    ensure_aware(now)

    channels: list[EnrichedChannel] = []
    matched = 0
    for record in records:
        if kind is not None and record.kind != kind:
            record = dataclasses.replace(record, kind=kind)

        guide_id = record.guide_channel_id
        if guide_id and guide_id in guide:
            schedule = tuple(guide[guide_id])
            matched += 1
            channels.append(
                EnrichedChannel(
                    record=record,
                    schedule=schedule,
                    current_event=resolve_current_event(schedule, now),
                )
            )
        else:
            channels.append(EnrichedChannel(record=record))

    logger.debug("Built catalog: %s channels, %s with guide data", len(channels), matched)
    return channels


def refresh_current_events(
    channels: Iterable[EnrichedChannel],
    now: datetime,
) -> list[EnrichedChannel]:
    """Re-resolve the airing event of each channel; schedules are left untouched"""
    ensure_aware(now)

    refreshed = []
    for channel in channels:
        current = resolve_current_event(channel.schedule, now)
        if current is channel.current_event:
            refreshed.append(channel)
        else:
            refreshed.append(dataclasses.replace(channel, current_event=current))
    return refreshed
