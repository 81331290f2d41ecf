"""Points, totals and percent-complete values."""

from datetime import date
from typing import Optional

from .periods import total_days, total_weeks
from .schemas import ChallengeDefinition, ChallengeType, Objective, ProgressSummary


def points_earned(objective: Objective, current_value: float, capped: bool) -> float:
    """Points one objective contributes.

    Args:
        objective: The objective
        current_value: Aggregated value for the objective
        capped: Clamp the value at the objective's target

    Returns:
        Points earned
    """
    if capped:
        return min(current_value, objective.target_value) * objective.points_per_unit
    return current_value * objective.points_per_unit


def total_score(
    challenge: ChallengeDefinition, progress: dict[str, float], capped: bool
) -> float:
    """Sum of points over every objective of the challenge."""
    return sum(
        points_earned(objective, progress.get(objective.id, 0.0), capped)
        for objective in challenge.objectives
    )


def score_pair(
    challenge: ChallengeDefinition, progress: dict[str, float]
) -> tuple[float, float]:
    """Ranking score and uncapped score, computed side by side."""
    uncapped = total_score(challenge, progress, capped=False)
    if challenge.caped_points:
        return total_score(challenge, progress, capped=True), uncapped
    return uncapped, uncapped


def challenge_total_points(
    challenge: ChallengeDefinition,
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> float:
    """Points available in a challenge; the denominator for percent displays."""
    if not challenge.objectives:
        return 0.0

    first = challenge.objectives[0]
    ctype = challenge.challenge_type
    if ctype in (ChallengeType.STANDARD, ChallengeType.BINGO):
        return sum(o.target_value * o.points_per_unit for o in challenge.objectives)
    if ctype == ChallengeType.CHECKLIST:
        return float(len(challenge.objectives))
    if ctype == ChallengeType.COMPLETION:
        return total_days(challenge, user_id, today) * first.points_per_unit
    if ctype == ChallengeType.WEEKLY:
        return total_weeks(challenge, user_id, today) * first.points_per_unit
    raise ValueError(f"Unhandled challenge type: {ctype}")


def progress_percent(current: float, total: float) -> float:
    """Percent complete, clamped to 0-100; 0 when there is nothing to reach."""
    if total <= 0:
        return 0.0
    return max(0.0, min(100.0, (current / total) * 100))


def progress_summary(
    challenge: ChallengeDefinition,
    progress: dict[str, float],
    user_id: Optional[str] = None,
    today: Optional[date] = None,
) -> ProgressSummary:
    """Current/total/percent as shown for each challenge type.

    - completion: days done against days in the window
    - weekly: weeks done against weeks in the window
    - checklist: ticked items against item count
    - standard and bingo: score against total points
    """
    ctype = challenge.challenge_type
    values = [progress.get(o.id, 0.0) for o in challenge.objectives]

    if ctype == ChallengeType.COMPLETION:
        current = sum(values)
        total = float(total_days(challenge, user_id, today))
    elif ctype == ChallengeType.WEEKLY:
        current = sum(values)
        total = float(total_weeks(challenge, user_id, today))
    elif ctype == ChallengeType.CHECKLIST:
        current = float(sum(1 for v in values if v >= 1))
        total = float(len(challenge.objectives))
    else:
        current = total_score(challenge, progress, capped=challenge.caped_points)
        total = challenge_total_points(challenge, user_id, today)

    return ProgressSummary(
        current=current,
        total=total,
        percent=progress_percent(current, total),
    )
