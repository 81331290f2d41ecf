"""Progress aggregation, points and leaderboard ranking engine.

Pure functions over immutable snapshots of challenges and entries:
- Local date and week bucketing
- Per-type progress aggregation
- Capped and uncapped points
- Completion time detection
- Bingo line detection
- Leaderboard ranking
"""

from .aggregation import (
    ProgressAccumulator,
    aggregate_collaborative,
    aggregate_progress,
    bingo_completion_count,
    build_user_progress,
    completed_days,
)
from .bingo import completed_objective_ids, detect_bingo_line, is_bingo_grid
from .cache import ProgressCache
from .completion import compute_completion_time
from .leaderboard import rank_leaderboard
from .points import (
    challenge_total_points,
    points_earned,
    progress_percent,
    progress_summary,
    score_pair,
    total_score,
)
from .schemas import (
    ChallengeDefinition,
    ChallengeType,
    LeaderboardEntry,
    Objective,
    ParticipantWindow,
    ProgressEntry,
    ProgressSummary,
    UserProgress,
)

__all__ = [
    "ProgressAccumulator",
    "aggregate_collaborative",
    "aggregate_progress",
    "bingo_completion_count",
    "build_user_progress",
    "completed_days",
    "completed_objective_ids",
    "detect_bingo_line",
    "is_bingo_grid",
    "ProgressCache",
    "compute_completion_time",
    "rank_leaderboard",
    "challenge_total_points",
    "points_earned",
    "progress_percent",
    "progress_summary",
    "score_pair",
    "total_score",
    "ChallengeDefinition",
    "ChallengeType",
    "LeaderboardEntry",
    "Objective",
    "ParticipantWindow",
    "ProgressEntry",
    "ProgressSummary",
    "UserProgress",
]
