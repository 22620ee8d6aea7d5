"""
Catalog Query Service

Read-side helpers over catalog snapshots: group listing, filtering and
catalog-wide lookup by stream URL.
"""
import logging
from collections.abc import Collection, Iterable, Sequence

from iptv_catalog.services.fetch_types import EnrichedChannel

logger = logging.getLogger(__name__)

FAVORITES_GROUP = "Favorites"
OTHER_GROUP = "Other"


def list_groups(channels: Iterable[EnrichedChannel]) -> list[str]:
    """Sorted unique non-empty group names"""
    return sorted({channel.group_name for channel in channels if channel.group_name})


def filter_channels(
    channels: Sequence[EnrichedChannel],
    *,
    group: str | None = None,
    search: str | None = None,
    favorites: Collection[str] | None = None,
) -> list[EnrichedChannel]:
    """
    Filter channels by group and name search

    Args:
        channels: Channels of one catalog section
        group: Group name, or FAVORITES_GROUP to keep favorites only
        search: Case-insensitive substring matched against the channel name
        favorites: Favorite stream URLs, used with FAVORITES_GROUP

    Returns:
        Matching channels in their original order
    """
    filtered = list(channels)

    if group == FAVORITES_GROUP:
        favorite_urls = favorites or ()
        filtered = [channel for channel in filtered if channel.stream_url in favorite_urls]
    elif group:
        filtered = [channel for channel in filtered if channel.group_name == group]

    if search:
        needle = search.lower()
        filtered = [channel for channel in filtered if needle in channel.name.lower()]

    return filtered


def index_by_stream_url(*sections: Iterable[EnrichedChannel]) -> dict[str, EnrichedChannel]:
    """Catalog-wide lookup; a later record with the same stream URL replaces an earlier one"""
    index: dict[str, EnrichedChannel] = {}
    for section in sections:
        for channel in section:
            index[channel.stream_url] = channel
    return index


def group_by_category(channels: Iterable[EnrichedChannel]) -> dict[str, list[EnrichedChannel]]:
    """On-demand items grouped by category, groups in sorted order"""
    groups: dict[str, list[EnrichedChannel]] = {}
    for channel in channels:
        groups.setdefault(channel.group_name or OTHER_GROUP, []).append(channel)
    return {name: groups[name] for name in sorted(groups)}
