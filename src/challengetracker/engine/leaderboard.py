"""Leaderboard ranking."""

import logging
from collections.abc import Iterable
from datetime import date, tzinfo
from typing import Optional

from .aggregation import aggregate_progress
from .completion import compute_completion_time
from .points import score_pair
from .schemas import ChallengeDefinition, LeaderboardEntry, ProgressEntry

logger = logging.getLogger(__name__)


def rank_leaderboard(
    challenge: ChallengeDefinition,
    entries_by_user: dict[str, Iterable[ProgressEntry]],
    tz: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> list[LeaderboardEntry]:
    """Rank every participant of a challenge.

    Without capped points, participants are ordered by score. With capped
    points, those who finished come first in finishing order, followed by
    the rest by score. Positions use competition ranking: equal keys share
    a position and the next distinct key takes its index + 1.

    Args:
        challenge: Challenge definition (participants included)
        entries_by_user: Each user's entries for the challenge
        tz: Timezone for local dates
        today: Reference day for open-ended repeating challenges

    Returns:
        Ranked leaderboard rows, one per participant
    """
    strangers = set(entries_by_user) - set(challenge.participants)
    if strangers:
        logger.debug(
            "Ignoring entries from %d non-participant(s) of challenge %s",
            len(strangers),
            challenge.id,
        )

    rows = []
    for user_id in challenge.participants:
        entries = list(entries_by_user.get(user_id, ()))
        progress = aggregate_progress(challenge, entries, tz)
        score, uncapped = score_pair(challenge, progress)
        finished_at = compute_completion_time(challenge, entries, user_id, tz, today)
        rows.append(
            LeaderboardEntry(
                user_id=user_id,
                score=score,
                uncapped_score=uncapped,
                position=0,
                completion_time=finished_at,
            )
        )

    # Finishing order, independent of position
    finished = sorted(
        (r for r in rows if r.completion_time is not None),
        key=lambda r: (r.completion_time, r.user_id),
    )
    for order, row in enumerate(finished, start=1):
        row.completion_order = order

    if challenge.caped_points and challenge.objectives:
        unfinished = sorted(
            (r for r in rows if r.completion_time is None),
            key=lambda r: (-r.score, r.user_id),
        )
        ranked = finished + unfinished
    else:
        ranked = sorted(rows, key=lambda r: (-r.score, r.user_id))

    _assign_positions(ranked, by_finish=challenge.caped_points and bool(challenge.objectives))
    return ranked


def _rank_key(row: LeaderboardEntry, by_finish: bool) -> tuple:
    if by_finish and row.completion_time is not None:
        return ("finished", row.completion_time)
    return ("score", row.score)


def _assign_positions(rows: list[LeaderboardEntry], by_finish: bool) -> None:
    """Competition ranking over the active sort key."""
    previous = None
    for index, row in enumerate(rows):
        key = _rank_key(row, by_finish)
        if previous is not None and key == previous:
            row.position = rows[index - 1].position
        else:
            row.position = index + 1
        previous = key
