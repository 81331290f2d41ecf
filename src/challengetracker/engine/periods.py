"""Challenge windows and total day/week counts."""

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from .dates import days_inclusive, number_of_weeks, parse_date, utc_window
from .schemas import ChallengeDefinition

logger = logging.getLogger(__name__)

# Provisional totals for challenges without an end date
OPEN_ENDED_TOTAL_DAYS = 365
OPEN_ENDED_TOTAL_WEEKS = 52


def effective_window(
    challenge: ChallengeDefinition, user_id: Optional[str] = None
) -> tuple[Optional[str], Optional[str]]:
    """Start and end dates that apply to a user.

    Repeating challenges run per participant, so the participant's own
    window wins over the challenge dates when one is recorded.
    """
    if challenge.is_repeating and user_id and user_id in challenge.participant_windows:
        window = challenge.participant_windows[user_id]
        return window.start_date or challenge.start_date, window.end_date
    return challenge.start_date, challenge.end_date


def entry_window(
    challenge: ChallengeDefinition,
    user_id: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> tuple[Optional[datetime], Optional[datetime]]:
    """UTC bounds of the entries that count toward a user's progress.

    The bounds cover whole local days of the effective window and are
    half-open. A missing or unusable date leaves that side unbounded.
    """
    start, end = effective_window(challenge, user_id)
    start_d = parse_date(start, tz)
    end_d = parse_date(end, tz)
    lower = utc_window(start_d, start_d, tz)[0] if start_d else None
    upper = utc_window(end_d, end_d, tz)[1] if end_d else None
    return lower, upper


def _days_since(start: date, today: Optional[date]) -> int:
    today = today or date.today()
    return max(0, (today - start).days)


def total_days(
    challenge: ChallengeDefinition,
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> int:
    """Number of days a completion challenge asks for.

    Args:
        challenge: Challenge definition
        user_id: Participant, for repeating windows
        today: Reference day for open-ended repeating challenges

    Returns:
        Day count, or 0 when the start date is unusable
    """
    start, end = effective_window(challenge, user_id)
    start_d = parse_date(start)
    if start_d is None:
        logger.debug("Challenge %s has no usable start date", challenge.id)
        return 0

    if end is not None:
        end_d = parse_date(end)
        if end_d is None:
            logger.debug("Challenge %s has an unusable end date %r", challenge.id, end)
            return 0
        return max(0, days_inclusive(start_d, end_d))

    if challenge.is_repeating:
        return _days_since(start_d, today) + 1
    return OPEN_ENDED_TOTAL_DAYS


def total_weeks(
    challenge: ChallengeDefinition,
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> int:
    """Number of weeks a weekly challenge asks for."""
    start, end = effective_window(challenge, user_id)
    start_d = parse_date(start)
    if start_d is None:
        logger.debug("Challenge %s has no usable start date", challenge.id)
        return 0

    if end is not None:
        return number_of_weeks(start_d, end)

    if challenge.is_repeating:
        return max(1, _days_since(start_d, today) // 7 + 1)
    return OPEN_ENDED_TOTAL_WEEKS


def challenge_duration(challenge: ChallengeDefinition) -> Optional[timedelta]:
    """Length of the challenge's own window, used to size repeating windows."""
    start_d = parse_date(challenge.start_date)
    end_d = parse_date(challenge.end_date)
    if start_d is None or end_d is None:
        return None
    return end_d - start_d
