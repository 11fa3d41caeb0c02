"""
Conversions between an owner's fixed UTC offset and stored UTC instants.

Offsets are written the way owners configure them, e.g. "UTC-3", "UTC+5:30"
or plain "UTC". Every "which day did this happen on" question goes through
`local_date_of`; the UTC date of an instant is never used as a calendar date.
"""
import re
from datetime import date, datetime
from typing import Optional

import pytz
from pytz import UTC

from timeledger.exceptions import InvalidOffset

OFFSET_PATTERN = re.compile(r"^UTC(?:([+-])(\d{1,2})(?::(\d{2}))?)?$", re.IGNORECASE)
MAX_OFFSET_MINUTES = 14 * 60


def parse_offset(offset: str):
    """
    Parse an offset string into a pytz fixed-offset tzinfo.
    Args:
        offset (str): "UTC", "UTC+2", "UTC-03", "UTC+5:30", "UTC+05:45", ...
    Returns:
        tzinfo: pytz.UTC for a zero offset, pytz.FixedOffset otherwise
    Raises:
        InvalidOffset: if the string cannot be parsed or is out of range
    """
    if not isinstance(offset, str):
        raise InvalidOffset(f"Invalid timezone offset: {offset!r}")

    match = OFFSET_PATTERN.match(offset.strip())
    if not match:
        raise InvalidOffset(f"Invalid timezone offset: {offset!r}")

    sign, hours, minutes = match.groups()
    if sign is None:
        return UTC

    hours = int(hours)
    minutes = int(minutes or 0)
    if minutes >= 60:
        raise InvalidOffset(f"Invalid timezone offset: {offset!r}")

    total_minutes = hours * 60 + minutes
    if total_minutes > MAX_OFFSET_MINUTES:
        raise InvalidOffset(f"Timezone offset out of range: {offset!r}")

    if sign == "-":
        total_minutes = -total_minutes
    return pytz.FixedOffset(total_minutes)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Tag naive datetimes (as returned by MongoDB) as UTC, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC datetime, the form BSON stores."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def to_utc(local_datetime: datetime, offset: str) -> datetime:
    """
    Interpret a naive datetime as wall-clock time at `offset` and return the
    equivalent aware UTC instant. Aware datetimes already name an instant and
    are only converted.
    """
    tz = parse_offset(offset)
    if local_datetime.tzinfo is not None:
        return local_datetime.astimezone(UTC)
    return tz.localize(local_datetime).astimezone(UTC)


def to_local(utc_instant: datetime, offset: str) -> datetime:
    """Naive wall-clock datetime at `offset` for a UTC instant."""
    tz = parse_offset(offset)
    return ensure_utc(utc_instant).astimezone(tz).replace(tzinfo=None)


def local_date_of(utc_instant: datetime, offset: str) -> date:
    return to_local(utc_instant, offset).date()


def today_in(offset: str, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(UTC)
    return local_date_of(now, offset)
