from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Optional


NOON = time(12, 0)

_TIME_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$")
_DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%d %B %Y", "%Y/%m/%d")


def parse_sim_time(value: str | None) -> time:
    """Parse ``8:30 PM`` / ``20:30`` style strings; anything else is noon."""
    match = _TIME_RE.match(str(value or ""))
    if not match:
        return NOON
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").upper()
    if meridiem == "PM" and hour != 12:
        hour += 12
    elif meridiem == "AM" and hour == 12:
        hour = 0
    if not meridiem and match.group(2) is None:
        return NOON
    if hour > 23 or minute > 59:
        return NOON
    return time(hour, minute)


def parse_sim_hour(value: str | None) -> int:
    return parse_sim_time(value).hour


def parse_sim_date(value: str | None) -> Optional[date]:
    text = str(value or "").strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def parse_sim_datetime(date_value: str | None, time_value: str | None) -> Optional[datetime]:
    parsed_date = parse_sim_date(date_value)
    if parsed_date is None:
        return None
    return datetime.combine(parsed_date, parse_sim_time(time_value))
