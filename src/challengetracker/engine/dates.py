"""Local date and Monday-start week helpers.

Every conversion from a stored UTC timestamp to a calendar day goes through
`local_date`. Weeks run Monday to Sunday and are identified by the ISO date
of their Monday.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from .schemas import DateLike

logger = logging.getLogger(__name__)

# Horizon used when a range has no end
OPEN_ENDED_DAYS = 365


def to_utc(ts: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_date(ts: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of a UTC timestamp in the local timezone.

    Args:
        ts: Timestamp (naive values are UTC)
        tz: Target timezone; None uses the system local zone

    Returns:
        The local calendar date
    """
    return to_utc(ts).astimezone(tz).date()


def parse_date(value: DateLike, tz: Optional[tzinfo] = None) -> Optional[date]:
    """Parse a date-ish value, returning None instead of raising.

    Accepts date objects, datetimes (converted to their local day),
    ``YYYY-MM-DD`` strings and full ISO timestamps.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return local_date(value, tz)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        logger.debug("Ignoring non-date value %r", value)
        return None

    text = value.strip()
    if not text:
        return None
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return local_date(datetime.fromisoformat(text), tz)
    except ValueError:
        logger.debug("Unparsable date %r", value)
        return None


def week_start(d: date) -> date:
    """Monday on or before `d`."""
    return d - timedelta(days=d.weekday())


def week_end(d: date) -> date:
    """Sunday following `week_start(d)`."""
    return week_start(d) + timedelta(days=6)


def week_identifier(d: date) -> str:
    """Key of the week containing `d` (ISO date of its Monday)."""
    return week_start(d).isoformat()


def days_inclusive(start: date, end: date) -> int:
    """Number of calendar days from start to end, both included."""
    return (end - start).days + 1


def is_full_weeks_range(start: date, end: date) -> bool:
    """True when the range starts on a Monday and ends on a Sunday."""
    return start.weekday() == 0 and end.weekday() == 6 and start <= end


def week_identifiers_in_range(start: DateLike, end: DateLike) -> list[str]:
    """All week keys touched by the range; [] when a bound is unusable."""
    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d is None or end_d is None:
        return []

    weeks = []
    current = week_start(start_d)
    last = week_end(end_d)
    while current <= last:
        weeks.append(week_identifier(current))
        current += timedelta(days=7)
    return weeks


def number_of_weeks(start: DateLike, end: DateLike) -> int:
    """Number of Monday-start weeks spanned by a range.

    A range of exactly seven days always counts as one week, even when it
    is not Monday-Sunday aligned.
    """
    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d is None or end_d is None:
        return 0

    if days_inclusive(start_d, end_d) == 7:
        return 1
    return len(week_identifiers_in_range(start_d, end_d))


def days_in_range(start: DateLike, end: DateLike) -> list[date]:
    """Every calendar date in the range; [] when a bound is unusable."""
    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d is None or end_d is None:
        return []
    return [start_d + timedelta(days=i) for i in range(max(0, days_inclusive(start_d, end_d)))]


def _local_midnight(d: date, tz: Optional[tzinfo]) -> datetime:
    if tz is None:
        # Attach the system zone for this particular date
        return datetime.combine(d, time()).astimezone()
    return datetime.combine(d, time(), tzinfo=tz)


def utc_window(
    start: DateLike,
    end: DateLike = None,
    tz: Optional[tzinfo] = None,
) -> Optional[tuple[datetime, datetime]]:
    """UTC bounds of a range of whole local days.

    Args:
        start: First local day
        end: Last local day (inclusive); None means a 365-day horizon
        tz: Local timezone; None uses the system zone

    Returns:
        Half-open (start_utc, end_utc) tuple, or None if start is unusable
    """
    start_d = parse_date(start, tz)
    if start_d is None:
        return None
    end_d = parse_date(end, tz)
    if end_d is None:
        if end is not None:
            return None
        end_d = start_d + timedelta(days=OPEN_ENDED_DAYS)

    start_utc = to_utc(_local_midnight(start_d, tz))
    end_utc = to_utc(_local_midnight(end_d + timedelta(days=1), tz))
    return start_utc, end_utc
