"""Pydantic schemas for the progress and ranking engine.

These are the immutable inputs and derived outputs of the engine. Storage
rows are converted to these types by the challenge manager before any
computation happens.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChallengeType(str, Enum):
    """Scoring semantics of a challenge."""

    STANDARD = "standard"  # Sum values toward each target
    BINGO = "bingo"  # 5x5 grid, summed like standard
    COMPLETION = "completion"  # Distinct days with an entry
    WEEKLY = "weekly"  # Weeks whose sum reaches the target
    CHECKLIST = "checklist"  # Any entry ticks the item

    @classmethod
    def _missing_(cls, value):
        # Older rows store checklist challenges as "collection"
        if isinstance(value, str) and value.lower() == "collection":
            return cls.CHECKLIST
        return None


class Objective(BaseModel):
    """A single measurable goal within a challenge."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    target_value: float = 0
    unit: str = ""
    points_per_unit: float = 1


class ProgressEntry(BaseModel):
    """One timestamped progress submission against an objective."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    challenge_id: str
    objective_id: str
    value: float
    created_at: datetime
    notes: Optional[str] = None

    @field_validator("value")
    @classmethod
    def value_not_zero(cls, v):
        """Zero-valued entries are never stored; resets delete entries."""
        if v == 0:
            raise ValueError("value must not be 0")
        return v

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v):
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


def _iso_or_none(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class ParticipantWindow(BaseModel):
    """Per-user start/end of a repeating challenge."""

    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def coerce_dates(cls, v):
        return _iso_or_none(v)


class ChallengeDefinition(BaseModel):
    """Everything the engine needs to know about a challenge.

    Dates are kept as ISO strings, exactly as they are stored. A malformed
    string is accepted here; the date helpers turn it into "no progress"
    rather than failing the whole leaderboard.
    """

    id: str
    title: str = ""
    objectives: list[Objective] = Field(default_factory=list)
    challenge_type: ChallengeType = ChallengeType.STANDARD
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    caped_points: bool = False
    is_repeating: bool = False
    is_collaborative: bool = False
    participants: list[str] = Field(default_factory=list)
    participant_windows: dict[str, ParticipantWindow] = Field(default_factory=dict)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def coerce_dates(cls, v):
        return _iso_or_none(v)

    @field_validator("participants")
    @classmethod
    def unique_participants(cls, v):
        """Keep first-seen order, drop duplicates."""
        return list(dict.fromkeys(v))

    def objective(self, objective_id: str) -> Optional[Objective]:
        """Look up an objective by id."""
        for objective in self.objectives:
            if objective.id == objective_id:
                return objective
        return None

    @property
    def objective_ids(self) -> list[str]:
        return [o.id for o in self.objectives]


class UserProgress(BaseModel):
    """Current value of one objective for one user (derived, never stored)."""

    user_id: str
    challenge_id: str
    objective_id: str
    current_value: float


class ProgressSummary(BaseModel):
    """Percent-complete display values for a user in a challenge."""

    current: float
    total: float
    percent: float


class LeaderboardEntry(BaseModel):
    """One ranked row of a challenge leaderboard."""

    user_id: str
    score: float
    uncapped_score: float
    position: int
    completion_order: Optional[int] = None
    completion_time: Optional[datetime] = None


DateLike = Union[date, datetime, str, None]
