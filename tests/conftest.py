"""Pytest configuration and shared fixtures.

Provides a temporary database, sample challenge definitions and a helper
for building progress entries with UTC timestamps.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from challengetracker.config import reset_config
from challengetracker.db.sqlite import Database, reset_db
from challengetracker.engine.schemas import (
    ChallengeDefinition,
    ChallengeType,
    Objective,
    ProgressEntry,
)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Point configuration at a throwaway database for every test."""
    reset_db()
    reset_config()
    monkeypatch.setenv("CHALLENGETRACKER_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.delenv("CHALLENGETRACKER_TIMEZONE", raising=False)
    monkeypatch.delenv("CHALLENGETRACKER_CACHE_TTL", raising=False)
    monkeypatch.delenv("CHALLENGETRACKER_LOG_LEVEL", raising=False)
    yield
    reset_db()
    reset_config()


@pytest.fixture
def db(tmp_path: Path) -> Database:
    """Create a test database instance."""
    database = Database(str(tmp_path / "test.db"))
    database.create_tables()
    return database


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def make_entry():
    """Build a progress entry at a UTC timestamp."""

    def _make(
        objective_id: str,
        value: float,
        when: datetime,
        user_id: str = "alice",
        challenge_id: str = "c1",
        notes=None,
    ) -> ProgressEntry:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return ProgressEntry(
            user_id=user_id,
            challenge_id=challenge_id,
            objective_id=objective_id,
            value=value,
            created_at=when,
            notes=notes,
        )

    return _make


@pytest.fixture
def standard_challenge() -> ChallengeDefinition:
    """Capped standard challenge: run 10 km at 5 points per km."""
    return ChallengeDefinition(
        id="c1",
        title="Run 10k",
        objectives=[Objective(id="run", title="Run", target_value=10, unit="km", points_per_unit=5)],
        challenge_type=ChallengeType.STANDARD,
        start_date="2024-01-01",
        end_date="2024-01-31",
        caped_points=True,
        participants=["alice", "bob", "carol"],
    )


@pytest.fixture
def completion_challenge() -> ChallengeDefinition:
    """Week-long completion challenge with two daily habits."""
    return ChallengeDefinition(
        id="c1",
        title="Daily habits",
        objectives=[
            Objective(id="read", title="Read", target_value=1, points_per_unit=2),
            Objective(id="walk", title="Walk", target_value=1, points_per_unit=2),
        ],
        challenge_type=ChallengeType.COMPLETION,
        start_date="2024-01-01",
        end_date="2024-01-07",
        participants=["alice"],
    )


@pytest.fixture
def weekly_challenge() -> ChallengeDefinition:
    """Two-week weekly challenge: three workouts a week."""
    return ChallengeDefinition(
        id="c1",
        title="Workouts",
        objectives=[Objective(id="gym", title="Gym", target_value=3, points_per_unit=10)],
        challenge_type=ChallengeType.WEEKLY,
        start_date="2024-01-01",
        end_date="2024-01-14",
        participants=["alice"],
    )


@pytest.fixture
def bingo_challenge() -> ChallengeDefinition:
    """5x5 bingo card, one unit per cell."""
    return ChallengeDefinition(
        id="c1",
        title="Bingo",
        objectives=[
            Objective(id=f"cell-{i}", title=f"Cell {i}", target_value=1) for i in range(25)
        ],
        challenge_type=ChallengeType.BINGO,
        start_date="2024-01-01",
        end_date="2024-12-31",
        participants=["alice"],
    )
