"""Timestamp parsing shared by the validator and the mapper."""

import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pandas as pd

DEFAULT_TIMEZONE = "Asia/Tokyo"

# Common spreadsheet layouts, tried in order after strict ISO
_PATTERNS = [
    re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})$"),
    re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})$"),
    re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})\s+(\d{1,2}):(\d{1,2})$"),
    re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{1,2})$"),
    re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"),
    re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"),
]


def _localize(value: datetime, tz_name: str) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name))
    return value.astimezone(timezone.utc)


def _parse_iso(value: str) -> Optional[datetime]:
    if "T" not in value or "Z" not in value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_patterns(value: str) -> Optional[datetime]:
    for pattern in _PATTERNS:
        match = pattern.match(value)
        if not match:
            continue
        parts = [int(part) for part in match.groups()]
        parts += [0] * (6 - len(parts))
        try:
            return datetime(*parts)
        except ValueError:
            # Matched the layout but not a real date (e.g. month 13)
            return None
    return None


def _parse_generic(value: str) -> Optional[datetime]:
    try:
        parsed = pd.to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_timestamp(value: str, tz_name: str = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """Parse a timestamp cell into an aware UTC datetime.

    Tries strict ISO (``...T...Z``) first, then the fixed ``YYYY-MM-DD`` /
    ``YYYY/MM/DD`` layouts with optional time, then pandas' generic parser.
    Naive results are interpreted in ``tz_name``.

    Args:
        value: Raw cell text
        tz_name: IANA zone for naive timestamps

    Returns:
        UTC datetime, or None when no format matches or the value cannot
        be represented in UTC
    """
    value = (value or "").strip()
    if not value:
        return None

    parsed = _parse_iso(value)
    if parsed is None and not any(pattern.match(value) for pattern in _PATTERNS):
        parsed = _parse_generic(value)
    elif parsed is None:
        parsed = _parse_patterns(value)

    if parsed is None:
        return None
    try:
        return _localize(parsed, tz_name)
    except OverflowError:
        # e.g. 0001-01-01 in a zone east of UTC falls before datetime.min
        return None


def format_timestamp(value: datetime) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SS.sssZ`` in UTC."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_iso_utc(value: str, tz_name: str = DEFAULT_TIMEZONE) -> Optional[str]:
    """Parse and render a timestamp cell, or None if unparseable."""
    parsed = parse_timestamp(value, tz_name)
    if parsed is None:
        return None
    return format_timestamp(parsed)
