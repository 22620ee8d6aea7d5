"""
Data merging utilities

This module handles merging of guide timelines fetched from multiple sources.
"""
import logging
from collections.abc import MutableMapping, Sequence
from datetime import datetime

from iptv_catalog.services.fetch_types import GuideEvent, GuideTimeline
from iptv_catalog.utils.logging_helpers import log_merge_summary

logger = logging.getLogger(__name__)


def merge_timelines(timelines: Sequence[GuideTimeline | None]) -> GuideTimeline:
    """
    Merge guide timelines from several sources into one.

    Events are unioned per channel and de-duplicated by (start time, title),
    the first source to report a key wins. Failed sources are passed as None
    and contribute nothing.

    Args:
        timelines: Parsed timelines in source order

    Returns:
        Merged timeline, each channel sorted by start time then title
    """
    merged: dict[str, dict[tuple[datetime, str], GuideEvent]] = {}

    for timeline in timelines:
        if not timeline:
            continue
        for channel_id, events in timeline.items():
            existing = merged.setdefault(channel_id, {})
            merge_events(existing, channel_id, events)

    result: GuideTimeline = {
        channel_id: sorted(events.values(), key=create_event_key)
        for channel_id, events in merged.items()
    }

    log_merge_summary(
        logger,
        len(result),
        sum(len(events) for events in result.values()),
    )
    return result


def merge_events(
    existing_events: MutableMapping[tuple[datetime, str], GuideEvent],
    channel_id: str,
    new_events: Sequence[GuideEvent]
) -> int:
    """
    Merge new events into a channel's keyed event dictionary.

    Args:
        existing_events: Events already seen for the channel, keyed by dedup key
        channel_id: Guide channel id, used for logging
        new_events: Events from the next source

    Returns:
        Count of events that were not seen before
    """
    new_count = 0

    for event in new_events:
        if event.dedup_key not in existing_events:
            existing_events[event.dedup_key] = event
            new_count += 1
        else:
            logger.debug(
                "Skipping duplicate event: %s on %s",
                event.title,
                channel_id,
            )

    return new_count


def create_event_key(event: GuideEvent) -> tuple[datetime, str]:
    """
    Sort key for merged events.

    Ties on start time are broken by title so the merged order does not
    depend on which source came first.
    """
    return event.start_time, event.title
