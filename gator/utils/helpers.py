"""
Helper functions for gator.
Contains utility functions for date handling, durations and URL checks.
"""
import re
import urllib.parse
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
import logging

from dateutil import tz

logger = logging.getLogger(__name__)


class UnsupportedDateFormat(ValueError):
    """Raised when a feed date string matches none of the known layouts."""

    def __init__(self, value: str):
        super().__init__(f"unsupported date format: {value}")
        self.value = value


# RFC 822 zone names; other alphabetic abbreviations fall back to UTC.
NAMED_ZONE_OFFSETS = {
    "UT": 0,
    "UTC": 0,
    "GMT": 0,
    "Z": 0,
    "EST": -5,
    "EDT": -4,
    "CST": -6,
    "CDT": -5,
    "MST": -7,
    "MDT": -6,
    "PST": -8,
    "PDT": -7,
}

_NAMED_ZONE_RE = re.compile(r"^(?:[A-Za-z]{1,5}|(?:GMT|UTC)[+-]\d{1,2})$")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _resolve_named_zone(name: str) -> Optional[tz.tzoffset]:
    """Map a zone abbreviation to a fixed offset, or None if it is not a zone name."""
    if not _NAMED_ZONE_RE.match(name):
        return None

    upper = name.upper()
    if upper[:3] in ("GMT", "UTC") and len(upper) > 3:
        hours = int(upper[3:])
        if abs(hours) >= 24:
            return None
        return tz.tzoffset(upper, hours * 3600)

    if upper not in NAMED_ZONE_OFFSETS:
        logger.debug(f"Unknown zone abbreviation '{name}', reading it as UTC")
    hours = NAMED_ZONE_OFFSETS.get(upper, 0)
    if hours == 0:
        return tz.UTC
    return tz.tzoffset(upper, hours * 3600)


def _parse_numeric_zone(layout: str) -> Callable[[str], datetime]:
    def parse(value: str) -> datetime:
        return datetime.strptime(value, layout)
    return parse


def _parse_named_zone(layout: str) -> Callable[[str], datetime]:
    def parse(value: str) -> datetime:
        stamp, _, zone = value.rpartition(" ")
        tzinfo = _resolve_named_zone(zone)
        if not stamp or tzinfo is None:
            raise ValueError(f"no zone name in {value!r}")
        return datetime.strptime(stamp, layout).replace(tzinfo=tzinfo)
    return parse


def _parse_rfc3339(value: str) -> datetime:
    if "T" not in value:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")
    # strptime's %f stops at microseconds
    value = _FRACTION_RE.sub(r"\1", value)
    layout = "%Y-%m-%dT%H:%M:%S.%f%z" if "." in value else "%Y-%m-%dT%H:%M:%S%z"
    return datetime.strptime(value, layout)


# Tried in order, first match wins
DATE_PARSERS: List[Tuple[str, Callable[[str], datetime]]] = [
    ("RFC1123Z", _parse_numeric_zone("%a, %d %b %Y %H:%M:%S %z")),
    ("RFC1123", _parse_named_zone("%a, %d %b %Y %H:%M:%S")),
    ("RFC3339", _parse_rfc3339),
    ("RFC822Z", _parse_numeric_zone("%d %b %y %H:%M %z")),
    ("RFC822", _parse_named_zone("%d %b %y %H:%M")),
]


def parse_published_at(date_string: str) -> datetime:
    """
    Parse a feed publication date into a timezone-aware UTC datetime.

    Args:
        date_string: Raw date string from a feed item

    Returns:
        The instant encoded by the string, in UTC

    Raises:
        UnsupportedDateFormat: If none of the known layouts match
    """
    value = (date_string or "").strip()

    for name, parse in DATE_PARSERS:
        try:
            parsed = parse(value).astimezone(timezone.utc)
        except (ValueError, OverflowError):
            continue
        logger.debug(f"Parsed date '{value}' as {name}")
        return parsed

    raise UnsupportedDateFormat(date_string)


_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(text: str) -> float:
    """
    Parse a duration string such as "30s", "1m" or "1h30m" into seconds.

    Raises:
        ValueError: If the string is not a valid duration
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"invalid duration: {text!r}")

    value = text.strip()
    sign = 1.0
    if value[0] in "+-":
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]

    if value == "0":
        return 0.0

    total = 0.0
    position = 0
    while position < len(value):
        match = _DURATION_RE.match(value, position)
        if not match:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0:
        raise ValueError(f"invalid duration: {text!r}")

    return sign * total


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime as fixed-width ISO-8601 in UTC.

    Naive datetimes are assumed to be UTC already. Fixed width keeps
    lexical and chronological order identical in storage.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Inverse of format_timestamp; None passes through."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def validate_url(url: str) -> bool:
    """
    Validate if a string is a proper http(s) URL.

    Args:
        url: URL string to validate

    Returns:
        True if valid URL, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urllib.parse.urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
    except ValueError:
        return False
