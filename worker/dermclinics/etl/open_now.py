"""Derive a live "open now" flag from Places weekday description text.

Stored clinics only keep ``regularOpeningHours.weekdayDescriptions`` lines
such as ``"Monday: 8:00 AM – 5:00 PM"``. Anything that cannot be read
resolves to closed; the caller never sees an exception.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"

STATE_TIMEZONES = {
    "AL": "America/Chicago", "AK": "America/Anchorage", "AZ": "America/Phoenix",
    "AR": "America/Chicago", "CA": "America/Los_Angeles", "CO": "America/Denver",
    "CT": "America/New_York", "DE": "America/New_York", "FL": "America/New_York",
    "GA": "America/New_York", "HI": "Pacific/Honolulu", "ID": "America/Denver",
    "IL": "America/Chicago", "IN": "America/Indiana/Indianapolis", "IA": "America/Chicago",
    "KS": "America/Chicago", "KY": "America/New_York", "LA": "America/Chicago",
    "ME": "America/New_York", "MD": "America/New_York", "MA": "America/New_York",
    "MI": "America/Detroit", "MN": "America/Chicago", "MS": "America/Chicago",
    "MO": "America/Chicago", "MT": "America/Denver", "NE": "America/Chicago",
    "NV": "America/Los_Angeles", "NH": "America/New_York", "NJ": "America/New_York",
    "NM": "America/Denver", "NY": "America/New_York", "NC": "America/New_York",
    "ND": "America/Chicago", "OH": "America/New_York", "OK": "America/Chicago",
    "OR": "America/Los_Angeles", "PA": "America/New_York", "RI": "America/New_York",
    "SC": "America/New_York", "SD": "America/Chicago", "TN": "America/Chicago",
    "TX": "America/Chicago", "UT": "America/Denver", "VT": "America/New_York",
    "VA": "America/New_York", "WA": "America/Los_Angeles", "WV": "America/New_York",
    "WI": "America/Chicago", "WY": "America/Denver", "DC": "America/New_York",
}

# Indexed by datetime.weekday(); strftime("%A") depends on the process locale.
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

HOURS_RE = re.compile(
    r"(\d{1,2}):(\d{2})\s*(AM|PM)\s*[-–—]\s*(\d{1,2}):(\d{2})\s*(AM|PM)",
    re.IGNORECASE,
)


def timezone_for_state(state_code: Optional[str]) -> str:
    return STATE_TIMEZONES.get((state_code or "").upper(), DEFAULT_TIMEZONE)


def _to_minutes(hour: str, minute: str, period: str) -> int:
    hour_value = int(hour) % 12
    if period.upper() == "PM":
        hour_value += 12
    return hour_value * 60 + int(minute)


def parse_hours_line(line: str) -> Optional[Tuple[int, int]]:
    """Return ``(open, close)`` in minutes since midnight, or None."""
    match = HOURS_RE.search(line)
    if not match:
        return None
    open_hour, open_min, open_period, close_hour, close_min, close_period = match.groups()
    return _to_minutes(open_hour, open_min, open_period), _to_minutes(close_hour, close_min, close_period)


def _local_now(tz_name: str, now: Optional[datetime]) -> datetime:
    tz = ZoneInfo(tz_name)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def is_open_now(weekday_text: Sequence[str], state_code: Optional[str], now: Optional[datetime] = None) -> bool:
    """True iff the clinic's local time falls inside today's ``[open, close)`` window."""
    if not weekday_text:
        return False

    local = _local_now(timezone_for_state(state_code), now)
    weekday = WEEKDAYS[local.weekday()]
    today_line = next((line for line in weekday_text if line and line.strip().startswith(weekday)), None)
    if today_line is None:
        return False
    if "closed" in today_line.lower():
        return False

    window = parse_hours_line(today_line)
    if window is None:
        logger.warning("Could not parse hours: %s", today_line)
        return False

    open_minutes, close_minutes = window
    current = local.hour * 60 + local.minute
    return open_minutes <= current < close_minutes


def refresh_open_now(record: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Recompute ``open_now`` on a stored clinic dict (read path)."""
    hours = record.get("opening_hours") or {}
    weekday_text = hours.get("weekday_text") or []
    open_now = is_open_now(weekday_text, record.get("state_code"), now) if weekday_text else False
    refreshed = dict(record, open_now=open_now)
    if record.get("opening_hours"):
        refreshed["opening_hours"] = dict(hours, open_now=open_now)
    return refreshed
