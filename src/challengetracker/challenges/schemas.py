"""Pydantic schemas for challenge management."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..engine.dates import days_inclusive, is_full_weeks_range
from ..engine.schemas import ChallengeType


def check_weekly_range(
    challenge_type: ChallengeType, start_date: Optional[date], end_date: Optional[date]
) -> None:
    """Weekly challenges must cover whole Monday-Sunday weeks.

    A range of exactly seven days is accepted as one week.
    """
    if challenge_type != ChallengeType.WEEKLY or not start_date or not end_date:
        return
    if is_full_weeks_range(start_date, end_date):
        return
    if days_inclusive(start_date, end_date) == 7:
        return
    raise ValueError("Weekly challenges must start on a Monday and end on a Sunday")


class ObjectiveCreate(BaseModel):
    """Schema for an objective within a challenge definition."""

    id: Optional[str] = Field(None, max_length=36)  # Keep to preserve existing entries
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target_value: float = Field(0, ge=0)
    unit: str = Field("", max_length=50)
    points_per_unit: float = Field(1, ge=0)


def normalize_objectives(
    challenge_type: ChallengeType, objectives: list[ObjectiveCreate]
) -> list[ObjectiveCreate]:
    """Apply the objective rules of a challenge type.

    Checklist items are ticked once, so their target is always 1. Completion
    objectives count days, so they also score 1 point per unit. Every other
    type needs a positive target and positive points per unit.
    """
    if challenge_type == ChallengeType.CHECKLIST:
        return [o.model_copy(update={"target_value": 1}) for o in objectives]
    if challenge_type == ChallengeType.COMPLETION:
        return [
            o.model_copy(update={"target_value": 1, "points_per_unit": 1}) for o in objectives
        ]

    for objective in objectives:
        if objective.target_value <= 0:
            raise ValueError(f"Objective '{objective.title}' needs a target_value above 0")
        if objective.points_per_unit <= 0:
            raise ValueError(f"Objective '{objective.title}' needs points_per_unit above 0")
    return objectives


class ChallengeBase(BaseModel):
    """Base challenge fields."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    challenge_type: ChallengeType = ChallengeType.STANDARD
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    caped_points: bool = False
    is_repeating: bool = False
    is_collaborative: bool = False

    @field_validator("end_date")
    @classmethod
    def end_after_start(cls, v, info):
        """Validate end date is not before start date."""
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("end_date must be after start_date")
        return v


class ChallengeCreate(ChallengeBase):
    """Schema for creating a challenge."""

    objectives: list[ObjectiveCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def type_rules(self):
        check_weekly_range(self.challenge_type, self.start_date, self.end_date)
        self.objectives = normalize_objectives(self.challenge_type, self.objectives)
        return self


class ChallengeUpdate(BaseModel):
    """Schema for updating a challenge.

    When objectives are given they replace the whole objective set.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    caped_points: Optional[bool] = None
    is_repeating: Optional[bool] = None
    is_collaborative: Optional[bool] = None
    objectives: Optional[list[ObjectiveCreate]] = None


class EntryCreate(BaseModel):
    """Schema for logging progress."""

    user_id: str = Field(..., min_length=1, max_length=100)
    challenge_id: str
    objective_id: str
    value: float
    created_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("value")
    @classmethod
    def value_not_zero(cls, v):
        """A zero entry is meaningless; use reset to clear progress."""
        if v == 0:
            raise ValueError("value must not be 0")
        return v


class ObjectiveResponse(BaseModel):
    """Schema for objective responses."""

    id: str
    position: int
    title: str
    description: Optional[str] = None
    target_value: float
    unit: str
    points_per_unit: float

    model_config = {"from_attributes": True}


class ChallengeResponse(BaseModel):
    """Schema for challenge responses."""

    id: str
    title: str
    description: Optional[str] = None
    challenge_type: ChallengeType
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    caped_points: bool
    is_repeating: bool
    is_collaborative: bool
    total_points: float
    objectives: list[ObjectiveResponse]
    participant_ids: list[str]

    model_config = {"from_attributes": True}
