"""
Feed Downloader Service

Handles fetching and parsing of playlist and guide feeds.
Separated from orchestration logic for better testability.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from iptv_catalog.services.fetch_types import ChannelRecord, ContentKind, GuideTimeline
from iptv_catalog.services.playlist_parser_service import parse_playlist
from iptv_catalog.services.xmltv_parser_service import parse_guide_async
from iptv_catalog.utils.data_merging import merge_timelines
from iptv_catalog.utils.logging_helpers import log_source_processing, sanitize_url_for_logging


logger = logging.getLogger(__name__)

FetchFunc = Callable[[str], Awaitable[str]]


async def fetch_playlist(
    fetch: FetchFunc,
    url: str,
    kind: ContentKind,
) -> list[ChannelRecord]:
    """
    Fetch and parse one playlist

    Raises:
        NetworkError: If the playlist cannot be fetched
        FormatError: If the playlist text is malformed
    """
    safe_url = sanitize_url_for_logging(url)
    logger.info(f"  [Playlist {kind.value}] Fetching {safe_url}")
    text = await fetch(url)

    records = parse_playlist(text, kind=kind)
    logger.info(f"  [Playlist {kind.value}] Parsed {len(records)} entries from {safe_url}")
    return records


async def fetch_guide_source(
    fetch: FetchFunc,
    source_url: str,
    source_index: int,
    total_sources: int,
    *,
    parse_timeout_seconds: int | None = None
) -> GuideTimeline | None:
    """
    Fetch and parse a single guide source

    Guide data only enriches the catalog, so every failure is logged and
    reported as None.

    Args:
        fetch: Fetch primitive
        source_url: URL to download from
        source_index: Index of this source (for logging)
        total_sources: Number of configured sources

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)
    """
    log_source_processing(logger, source_index, total_sources, source_url)
    safe_url = sanitize_url_for_logging(source_url)
    try:
        text = await fetch(source_url)
        if not text or not text.strip():
            logger.warning(f"  [Guide {source_index}] Empty document from {safe_url}")
            return None

        timeline = await parse_guide_async(text, parse_timeout_seconds=parse_timeout_seconds)
    except Exception as exc:
        logger.error(
            "  [Guide %s] Failed to process %s: %s",
            source_index,
            safe_url,
            exc,
        )
        return None

    logger.info(f"  [Guide {source_index}] Parsing complete: {len(timeline)} channels")
    return timeline


async def fetch_guides(
    fetch: FetchFunc,
    source_urls: Sequence[str],
    *,
    parse_timeout_seconds: int | None = None
) -> GuideTimeline:
    """
    Fetch all guide sources concurrently and merge them

    Returns:
        Merged timeline; empty when no source could be used
    """
    sources = [url for url in source_urls if url]
    if not sources:
        logger.warning("No guide sources configured - skipping guide fetch")
        return {}

    tasks = [
        asyncio.create_task(
            fetch_guide_source(
                fetch,
                source_url,
                index,
                len(sources),
                parse_timeout_seconds=parse_timeout_seconds,
            )
        )
        for index, source_url in enumerate(sources, start=1)
    ]
    timelines = await asyncio.gather(*tasks)

    succeeded = sum(1 for timeline in timelines if timeline is not None)
    logger.info("Guide sources: %s/%s usable", succeeded, len(sources))
    return merge_timelines(timelines)
