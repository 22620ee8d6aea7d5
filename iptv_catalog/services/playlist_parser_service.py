"""
Playlist Parser

Turns EXTM3U playlist text into channel records.
"""
import logging
import re

from iptv_catalog.exceptions import FormatError
from iptv_catalog.services.fetch_types import ChannelRecord, ContentKind

logger = logging.getLogger(__name__)

PLAYLIST_MARKER = "#EXTM3U"
METADATA_PREFIX = "#EXTINF:"
UNNAMED_CHANNEL = "unnamed channel"

_ATTRIBUTE_KEYS = ("tvg-logo", "group-title", "tvg-id", "tvg-name")
_ATTRIBUTE_RES = {key: re.compile(rf'{key}="([^"]*)"') for key in _ATTRIBUTE_KEYS}

_COUNTRY_SUFFIX_RE = re.compile(r"(?:\s*\(\w{2,3}\))+\s*$")
_QUALITY_TOKEN_RE = re.compile(r"\b(HD|SD|FHD|4K|HEVC)\b", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_channel_name(name: str) -> str:
    """
    Clean up a raw playlist display name

    Drops trailing country codes like "(TR)", moves quality tokens to the end
    (uppercased, de-duplicated, first-seen order) and collapses whitespace.
    Applying it twice gives the same result as applying it once.
    """
    formatted = _COUNTRY_SUFFIX_RE.sub("", name).strip()

    tokens: list[str] = []
    for match in _QUALITY_TOKEN_RE.finditer(formatted):
        token = match.group(1).upper()
        if token not in tokens:
            tokens.append(token)

    if tokens:
        formatted = _QUALITY_TOKEN_RE.sub(" ", formatted)
        formatted = f"{formatted} {' '.join(tokens)}"

    formatted = _WHITESPACE_RE.sub(" ", formatted).strip()
    return formatted or UNNAMED_CHANNEL


def parse_playlist(text: str, kind: ContentKind = ContentKind.LIVE) -> list[ChannelRecord]:
    """
    Parse EXTM3U text into channel records

    Args:
        text: Raw playlist text
        kind: Content kind assigned to every record

    Returns:
        Records in playlist order, one per complete (metadata, url) pair

    Raises:
        FormatError: If the first non-empty line is not the EXTM3U marker
    """
    lines = text.lstrip("\ufeff").splitlines()

    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1

    if start >= len(lines) or lines[start].strip() != PLAYLIST_MARKER:
        raise FormatError(f"Invalid playlist format: text must start with '{PLAYLIST_MARKER}'")

    records: list[ChannelRecord] = []
    skipped = 0
    i = start + 1
    while i < len(lines):
        line = lines[i].strip()
        i += 1
        if not line.startswith(METADATA_PREFIX):
            continue

        url_line = lines[i].strip() if i < len(lines) else ""
        if url_line.startswith(METADATA_PREFIX):
            # Dangling entry; the next metadata line is handled on its own
            skipped += 1
            continue

        i += 1
        if not url_line or url_line.startswith("#"):
            skipped += 1
            continue

        records.append(_build_record(line, url_line, kind))

    if skipped:
        logger.debug("Skipped %s playlist entries without a usable URL line", skipped)

    logger.debug("Parsed %s playlist entries", len(records))
    return records


def _build_record(info_line: str, url: str, kind: ContentKind) -> ChannelRecord:
    """Build a record from a metadata line and its URL"""
    _, comma, raw_name = info_line.rpartition(",")
    attributes = _extract_attributes(info_line)

    return ChannelRecord(
        name=normalize_channel_name(raw_name if comma else ""),
        stream_url=url,
        logo_url=attributes["tvg-logo"],
        group_name=attributes["group-title"],
        guide_channel_id=attributes["tvg-id"],
        guide_name=attributes["tvg-name"],
        kind=kind,
    )


def _extract_attributes(info_line: str) -> dict[str, str | None]:
    """Read key="value" attributes, missing keys map to None"""
    attributes: dict[str, str | None] = {}
    for key, pattern in _ATTRIBUTE_RES.items():
        match = pattern.search(info_line)
        attributes[key] = match.group(1) if match else None
    return attributes
