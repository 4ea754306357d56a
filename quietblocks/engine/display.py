"""Display-timezone formatting boundary.

Everything inside the engine works on naive UTC instants. Conversion to a
user's wall clock happens only here, with an explicit IANA timezone.
"""

import logging
import os
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from dotenv import load_dotenv

from quietblocks.models.constants import DEFAULT_DISPLAY_TIMEZONE

load_dotenv()

logger = logging.getLogger(__name__)


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def get_display_timezone(name: Optional[str] = None) -> ZoneInfo:
    """Resolve a display timezone.

    Order: explicit name, then ``DISPLAY_TIMEZONE`` env var, then UTC. An
    unknown name falls back to UTC rather than failing a reminder run.
    """
    tz_name = name or os.getenv("DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown display timezone {tz_name!r}, using UTC")
        return ZoneInfo("UTC")


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    """Convert a naive-UTC instant to an aware datetime in ``tz``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    return to_local(dt, tz).date()


def format_clock(dt: datetime, tz: ZoneInfo) -> str:
    """24-hour ``HH:MM`` wall-clock time."""
    return to_local(dt, tz).strftime("%H:%M")


def format_time_range(start: datetime, end: datetime, tz: ZoneInfo) -> str:
    return f"{format_clock(start, tz)} - {format_clock(end, tz)}"


def format_datetime(dt: datetime, tz: ZoneInfo) -> str:
    """Long human-readable form used in reminder emails.

    Example: ``Monday, January 06, 2025 at 03:30 PM IST``
    """
    return to_local(dt, tz).strftime("%A, %B %d, %Y at %I:%M %p %Z")


