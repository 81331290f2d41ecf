"""Progress aggregation.

Turns a set of progress entries into the current value of every objective
of a challenge. The fold itself lives in `ProgressAccumulator`, which the
completion detector replays entry by entry.
"""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import date, tzinfo
from typing import Optional

from .dates import local_date, week_identifier
from .schemas import (
    ChallengeDefinition,
    ChallengeType,
    Objective,
    ProgressEntry,
    UserProgress,
)

logger = logging.getLogger(__name__)


def canonical_order(entries: Iterable[ProgressEntry]) -> list[ProgressEntry]:
    """Sort entries so folding them never depends on arrival order."""
    return sorted(
        entries,
        key=lambda e: (e.created_at, e.objective_id, e.value, e.notes or "", e.user_id),
    )


class ProgressAccumulator:
    """Running per-objective state for one challenge.

    Keeps the raw sum, the set of local days and the per-week sums of every
    objective, so the value of any challenge type can be read at any point
    of a replay.
    """

    def __init__(self, challenge: ChallengeDefinition, tz: Optional[tzinfo] = None):
        self.challenge = challenge
        self.tz = tz
        self._objectives = {o.id: o for o in challenge.objectives}
        self._sums: dict[str, float] = {oid: 0.0 for oid in self._objectives}
        self._counts: dict[str, int] = {oid: 0 for oid in self._objectives}
        self._days: dict[str, set[date]] = {oid: set() for oid in self._objectives}
        self._week_sums: dict[str, dict[str, float]] = {oid: {} for oid in self._objectives}

    def add(self, entry: ProgressEntry) -> bool:
        """Fold one entry in.

        Returns:
            False when the entry does not belong to this challenge's objectives
        """
        if entry.challenge_id != self.challenge.id or entry.objective_id not in self._objectives:
            logger.debug(
                "Skipping orphaned entry for %s/%s", entry.challenge_id, entry.objective_id
            )
            return False

        oid = entry.objective_id
        day = local_date(entry.created_at, self.tz)
        week = week_identifier(day)

        self._sums[oid] += entry.value
        self._counts[oid] += 1
        self._days[oid].add(day)
        self._week_sums[oid][week] = self._week_sums[oid].get(week, 0.0) + entry.value
        return True

    def value(self, objective_id: str) -> float:
        """Current value of an objective under the challenge's type."""
        objective = self._objectives.get(objective_id)
        if objective is None:
            return 0.0
        rule = VALUE_RULES[self.challenge.challenge_type]
        return rule(self, objective)

    def values(self) -> dict[str, float]:
        """Current value of every objective, in objective order."""
        return {oid: self.value(oid) for oid in self._objectives}

    def days_with_entries(self, objective_id: str) -> set[date]:
        return set(self._days.get(objective_id, ()))


# ---------------------------------------------------------------------------
# Per-type value rules
# ---------------------------------------------------------------------------


def _summed(acc: ProgressAccumulator, objective: Objective) -> float:
    return acc._sums[objective.id]


def _distinct_days(acc: ProgressAccumulator, objective: Objective) -> float:
    return float(len(acc._days[objective.id]))


def _complete_weeks(acc: ProgressAccumulator, objective: Objective) -> float:
    weeks = acc._week_sums[objective.id]
    return float(sum(1 for total in weeks.values() if total >= objective.target_value))


def _ticked(acc: ProgressAccumulator, objective: Objective) -> float:
    return 1.0 if acc._counts[objective.id] > 0 else 0.0


VALUE_RULES: dict[ChallengeType, Callable[[ProgressAccumulator, Objective], float]] = {
    ChallengeType.STANDARD: _summed,
    ChallengeType.BINGO: _summed,
    ChallengeType.COMPLETION: _distinct_days,
    ChallengeType.WEEKLY: _complete_weeks,
    ChallengeType.CHECKLIST: _ticked,
}


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def aggregate_progress(
    challenge: ChallengeDefinition,
    entries: Iterable[ProgressEntry],
    tz: Optional[tzinfo] = None,
) -> dict[str, float]:
    """Current value of every objective for one user's entries.

    Args:
        challenge: Challenge definition
        entries: The user's entries for the challenge (UTC timestamps)
        tz: Timezone for local dates; None uses the system zone

    Returns:
        Map of objective id to current value; 0 for untouched objectives
    """
    acc = ProgressAccumulator(challenge, tz)
    for entry in canonical_order(entries):
        acc.add(entry)
    return acc.values()


def aggregate_collaborative(
    challenge: ChallengeDefinition,
    entries: Iterable[ProgressEntry],
    tz: Optional[tzinfo] = None,
) -> dict[str, float]:
    """Shared progress of a collaborative challenge.

    Entries of every participant count toward one progress map. When the
    challenge lists participants, entries from anyone else are ignored.
    """
    members = set(challenge.participants)
    if members:
        entries = [e for e in entries if e.user_id in members]
    return aggregate_progress(challenge, entries, tz)


def bingo_completion_count(value: float, target: float) -> int:
    """How many times a bingo cell has been completed."""
    if target <= 0:
        return 0
    return max(0, math.floor(value / target))


def completed_days(
    challenge: ChallengeDefinition,
    entries: Iterable[ProgressEntry],
    tz: Optional[tzinfo] = None,
) -> set[date]:
    """Local dates on which every objective received at least one entry."""
    if not challenge.objectives:
        return set()

    acc = ProgressAccumulator(challenge, tz)
    for entry in entries:
        acc.add(entry)

    days_per_objective = [acc.days_with_entries(o.id) for o in challenge.objectives]
    return set.intersection(*days_per_objective)


def build_user_progress(
    challenge: ChallengeDefinition, user_id: str, values: dict[str, float]
) -> list[UserProgress]:
    """Wrap aggregated values as `UserProgress` rows, one per objective."""
    return [
        UserProgress(
            user_id=user_id,
            challenge_id=challenge.id,
            objective_id=objective.id,
            current_value=values.get(objective.id, 0.0),
        )
        for objective in challenge.objectives
    ]
