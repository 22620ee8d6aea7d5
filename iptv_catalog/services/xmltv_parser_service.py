import asyncio
import logging
from collections import defaultdict
from typing import Optional

from lxml import etree # type: ignore

from iptv_catalog.exceptions import FormatError
from iptv_catalog.services.fetch_types import GuideEvent, GuideTimeline
from iptv_catalog.utils.timezone import DateFormatError, parse_xmltv_timestamp

logger = logging.getLogger(__name__)

UNTITLED_PROGRAM = "untitled program"


def _make_parser() -> etree.XMLParser:
    # Guide text arrives already decoded, so the document's own encoding declaration is ignored
    return etree.XMLParser(
        encoding="utf-8",
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
    )


def parse_guide(text: str) -> GuideTimeline:
    """
    Parse XMLTV text into per-channel event timelines

    Args:
        text: XMLTV document text

    Returns:
        Mapping of guide channel id to events sorted by start time

    Raises:
        FormatError: If the document is not well-formed XML
    """
    try:
        root = etree.fromstring(text.encode("utf-8"), _make_parser())
    except etree.XMLSyntaxError as e:
        logger.error(f"  XML parsing error: {e}")
        raise FormatError(f"Invalid XMLTV document: {e}") from e

    if root is None:
        raise FormatError("Invalid XMLTV document: empty document")

    timeline: defaultdict[str, list[GuideEvent]] = defaultdict(list)
    skipped = 0

    for programme in root.iter("programme"):
        parsed = _parse_single_programme(programme)
        if parsed is None:
            skipped += 1
            continue
        channel_id, event = parsed
        timeline[channel_id].append(event)

    for events in timeline.values():
        events.sort(key=lambda event: event.start_time)

    if skipped:
        logger.debug("Skipped %s invalid programme elements", skipped)

    logger.info(
        "XMLTV parsing complete: %s channels, %s programs",
        len(timeline),
        sum(len(events) for events in timeline.values()),
    )
    return dict(timeline)


def _parse_single_programme(programme: etree._Element) -> Optional[tuple[str, GuideEvent]]:
    """Parse single programme element"""
    # Required fields
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')

    if not channel_id or not start_str or not stop_str:
        return None

    # Parse times (skip invalid formats)
    try:
        start_time = parse_xmltv_timestamp(start_str)
        stop_time = parse_xmltv_timestamp(stop_str)
    except DateFormatError:
        logger.debug(
            "Skipping programme with invalid time on %s: start=%r stop=%r",
            channel_id,
            start_str,
            stop_str,
        )
        return None

    if stop_time <= start_time:
        logger.debug("Skipping programme on %s that ends before it starts", channel_id)
        return None

    return channel_id, GuideEvent(
        title=_get_text(programme, 'title', default=UNTITLED_PROGRAM),
        start_time=start_time,
        end_time=stop_time,
        synopsis=_get_text(programme, 'desc'),
    )


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None:
        return default
    text = "".join(child.itertext()).strip()
    return text or default


async def parse_guide_async(
    text: str,
    *,
    parse_timeout_seconds: int | None = None
) -> GuideTimeline:
    """
    Parse XMLTV text asynchronously with timeout protection.

    Parsing is offloaded to thread pool to avoid blocking event loop.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        FormatError: If the document is malformed or parsing times out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None
    timeout_display = f"{effective_timeout}s" if effective_timeout else "disabled"

    loop = asyncio.get_running_loop()
    logger.debug("Offloading XML parsing to thread pool executor (timeout: %s)...", timeout_display)
    parse_task = loop.run_in_executor(None, parse_guide, text)

    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError as e:
        logger.error("XML parsing timed out after %s", timeout_display)
        raise FormatError("XML parsing timed out - document may be too large or malformed") from e
