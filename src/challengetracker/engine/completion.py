"""Completion time detection.

Replays a user's entries in time order and reports the timestamp of the
entry that first made the challenge complete. Every caller that needs finish
order goes through `compute_completion_time`.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, tzinfo
from typing import Optional

from .aggregation import ProgressAccumulator, canonical_order
from .periods import total_days, total_weeks
from .schemas import ChallengeDefinition, ChallengeType, ProgressEntry

logger = logging.getLogger(__name__)

CompletionPredicate = Callable[[ProgressAccumulator], bool]


def _sum_reaches(total: int) -> CompletionPredicate:
    def predicate(acc: ProgressAccumulator) -> bool:
        # A window of zero length (bad dates) can never be completed
        return total > 0 and sum(acc.values().values()) >= total

    return predicate


def _every_target_met(challenge: ChallengeDefinition) -> CompletionPredicate:
    def predicate(acc: ProgressAccumulator) -> bool:
        return all(acc.value(o.id) >= o.target_value for o in challenge.objectives)

    return predicate


def completion_predicate(
    challenge: ChallengeDefinition,
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> CompletionPredicate:
    """Build the "challenge complete" test for a challenge type.

    Completion and weekly challenges compare the sum across all objectives
    against the number of days or weeks in the window. Every other type
    requires each objective to reach its own target.
    """
    builders: dict[ChallengeType, Callable[[], CompletionPredicate]] = {
        ChallengeType.COMPLETION: lambda: _sum_reaches(total_days(challenge, user_id, today)),
        ChallengeType.WEEKLY: lambda: _sum_reaches(total_weeks(challenge, user_id, today)),
        ChallengeType.STANDARD: lambda: _every_target_met(challenge),
        ChallengeType.BINGO: lambda: _every_target_met(challenge),
        ChallengeType.CHECKLIST: lambda: _every_target_met(challenge),
    }
    return builders[challenge.challenge_type]()


def compute_completion_time(
    challenge: ChallengeDefinition,
    entries: Iterable[ProgressEntry],
    user_id: Optional[str] = None,
    tz: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> Optional[datetime]:
    """Timestamp of the entry that first completed the challenge.

    Args:
        challenge: Challenge definition
        entries: One user's entries (any order)
        user_id: The user, for repeating windows
        tz: Timezone for local dates
        today: Reference day for open-ended repeating challenges

    Returns:
        UTC timestamp, or None if the challenge was never completed
    """
    if not challenge.objectives:
        return None

    is_complete = completion_predicate(challenge, user_id, today)
    acc = ProgressAccumulator(challenge, tz)

    for entry in canonical_order(entries):
        if not acc.add(entry):
            continue
        if is_complete(acc):
            logger.debug(
                "User %s completed challenge %s at %s",
                entry.user_id,
                challenge.id,
                entry.created_at.isoformat(),
            )
            return entry.created_at
    return None
