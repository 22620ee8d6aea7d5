"""
Date and Time utilities

This module handles guide timestamp decoding and ISO8601 conversions.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from datetime import datetime, timedelta, timezone
import logging
import re

logger = logging.getLogger(__name__)

_XMLTV_DIGITS_RE = re.compile(r"^(\d{14})")
_XMLTV_OFFSET_RE = re.compile(r"\s*([+-])(\d{2})(\d{2})$")


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_xmltv_timestamp(time_str: str) -> datetime:
    """
    Convert an XMLTV timestamp to a UTC datetime

    A missing offset is read as UTC.

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the timestamp cannot be decoded into a valid instant
    """
    value = time_str.strip()
    digits = _XMLTV_DIGITS_RE.match(value)
    if digits is None:
        raise DateFormatError(f"Invalid XMLTV timestamp: '{time_str}'")

    try:
        dt = datetime.strptime(digits.group(1), "%Y%m%d%H%M%S")
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV timestamp: '{time_str}'") from e

    offset_minutes = 0
    tz_match = _XMLTV_OFFSET_RE.search(value[14:])
    if tz_match:
        tz_sign = 1 if tz_match.group(1) == "+" else -1
        offset_minutes = tz_sign * (int(tz_match.group(2)) * 60 + int(tz_match.group(3)))

    # Convert to UTC
    try:
        dt_utc = dt - timedelta(minutes=offset_minutes)
    except OverflowError as e:
        raise DateFormatError(f"XMLTV timestamp out of range: '{time_str}'") from e

    return dt_utc.replace(tzinfo=timezone.utc)


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'"""
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str)
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def ensure_aware(value: datetime) -> datetime:
    """Reject naive datetimes so comparisons never mix local and UTC time"""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("Expected a timezone-aware datetime")
    return value
