"""Tests for ChallengeManager."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from challengetracker.challenges import (
    Challenge,
    ChallengeCreate,
    ChallengeManager,
    ChallengeUpdate,
    EntryCreate,
    ObjectiveCreate,
)
from challengetracker.engine.cache import ProgressCache
from challengetracker.engine.schemas import ChallengeType

UTC = timezone.utc


def at(day: int, hour: int = 12, month: int = 1) -> datetime:
    return datetime(2024, month, day, hour, tzinfo=UTC)


class TestChallengeManager:
    """Tests for ChallengeManager class."""

    @pytest.fixture
    def manager(self, db):
        """Create manager instance."""
        return ChallengeManager(db, cache=ProgressCache(), tz=UTC)

    @pytest.fixture
    def run_challenge(self, manager):
        """Capped 10 km run challenge with alice and bob joined."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Run 10k",
                challenge_type=ChallengeType.STANDARD,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 31),
                caped_points=True,
                objectives=[
                    ObjectiveCreate(id="run", title="Run", target_value=10, unit="km", points_per_unit=5)
                ],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        manager.join_challenge(challenge.id, "bob")
        return challenge

    def log(self, manager, challenge_id, value, when, user_id="alice", objective_id="run"):
        return manager.log_progress(
            EntryCreate(
                user_id=user_id,
                challenge_id=challenge_id,
                objective_id=objective_id,
                value=value,
                created_at=when,
            )
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def test_create_challenge(self, manager, run_challenge):
        """Creating stores objectives in order and computes total points."""
        assert run_challenge.title == "Run 10k"
        assert run_challenge.total_points == 50
        assert [o.id for o in run_challenge.objectives] == ["run"]
        assert run_challenge.start_date == "2024-01-01"

    def test_create_orders_objectives(self, manager):
        """Objectives keep their position."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Checklist",
                challenge_type=ChallengeType.CHECKLIST,
                objectives=[ObjectiveCreate(title=t, target_value=1) for t in "cab"],
            )
        )
        assert [o.title for o in challenge.objectives] == ["c", "a", "b"]
        assert [o.position for o in challenge.objectives] == [0, 1, 2]
        assert challenge.total_points == 3

    def test_create_duplicate_objective_ids(self, manager):
        """Objective ids must be unique within a challenge."""
        data = ChallengeCreate(
            title="Dupes",
            objectives=[
                ObjectiveCreate(id="x", title="A", target_value=1),
                ObjectiveCreate(id="x", title="B", target_value=1),
            ],
        )
        with pytest.raises(ValueError):
            manager.create_challenge(data)

    def test_weekly_range_must_be_whole_weeks(self):
        """Weekly challenges need Monday-Sunday ranges or exactly seven days."""
        with pytest.raises(ValidationError):
            ChallengeCreate(
                title="Weekly",
                challenge_type=ChallengeType.WEEKLY,
                start_date=date(2024, 1, 2),
                end_date=date(2024, 1, 9),
            )
        seven_days = ChallengeCreate(
            title="Weekly",
            challenge_type=ChallengeType.WEEKLY,
            start_date=date(2024, 1, 3),
            end_date=date(2024, 1, 9),
        )
        assert seven_days.end_date == date(2024, 1, 9)

    def test_checklist_and_completion_objectives_normalized(self, manager):
        """Checklist items and completion habits always target one unit."""
        checklist = manager.create_challenge(
            ChallengeCreate(
                title="Packing list",
                challenge_type=ChallengeType.CHECKLIST,
                objectives=[ObjectiveCreate(title=t) for t in ("Tent", "Stove")],
            )
        )
        habits = manager.create_challenge(
            ChallengeCreate(
                title="Habits",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 7),
                objectives=[ObjectiveCreate(title="Read", target_value=5, points_per_unit=3)],
            )
        )

        assert [o.target_value for o in checklist.objectives] == [1, 1]
        assert checklist.total_points == 2
        assert (habits.objectives[0].target_value, habits.objectives[0].points_per_unit) == (1, 1)
        assert habits.total_points == 7

    @pytest.mark.parametrize("challenge_type", ["standard", "bingo", "weekly"])
    def test_non_positive_target_or_points_rejected(self, challenge_type):
        """Scored types need a positive target and positive points per unit."""
        with pytest.raises(ValidationError):
            ChallengeCreate(
                title="No target",
                challenge_type=challenge_type,
                objectives=[ObjectiveCreate(title="Run")],
            )
        with pytest.raises(ValidationError):
            ChallengeCreate(
                title="No points",
                challenge_type=challenge_type,
                objectives=[ObjectiveCreate(title="Run", target_value=5, points_per_unit=0)],
            )

    def test_end_before_start_rejected(self):
        """End dates before the start are invalid."""
        with pytest.raises(ValidationError):
            ChallengeCreate(title="Bad", start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))

    def test_get_missing_challenge(self, manager):
        """Unknown ids return None."""
        assert manager.get_challenge("nope") is None

    def test_list_challenges(self, manager, run_challenge):
        """Challenges can be filtered by type and by participant."""
        manager.create_challenge(
            ChallengeCreate(title="Habits", challenge_type=ChallengeType.COMPLETION)
        )
        assert len(manager.list_challenges()) == 2
        assert [c.title for c in manager.list_challenges(user_id="alice")] == ["Run 10k"]
        assert [c.title for c in manager.list_challenges(ChallengeType.COMPLETION)] == ["Habits"]

    def test_update_replaces_objectives(self, manager, run_challenge):
        """Editing objectives replaces the set and recomputes total points."""
        self.log(manager, run_challenge.id, 4, at(2))

        updated = manager.update_challenge(
            run_challenge.id,
            ChallengeUpdate(
                title="Run and swim",
                objectives=[
                    ObjectiveCreate(id="run", title="Run", target_value=20, points_per_unit=5),
                    ObjectiveCreate(title="Swim", target_value=2, points_per_unit=10),
                ],
            ),
        )

        assert updated.title == "Run and swim"
        assert [o.title for o in updated.objectives] == ["Run", "Swim"]
        assert updated.total_points == 120
        # The kept objective id keeps its entries
        assert manager.get_progress("alice", run_challenge.id)["run"] == 4

    def test_update_applies_objective_rules(self, manager, run_challenge):
        """Replacement objectives follow the rules of the challenge type."""
        with pytest.raises(ValueError):
            manager.update_challenge(
                run_challenge.id,
                ChallengeUpdate(objectives=[ObjectiveCreate(id="run", title="Run")]),
            )
        assert manager.get_challenge(run_challenge.id).objectives[0].target_value == 10

        checklist = manager.create_challenge(
            ChallengeCreate(
                title="Packing list",
                challenge_type=ChallengeType.CHECKLIST,
                objectives=[ObjectiveCreate(title="Tent")],
            )
        )
        updated = manager.update_challenge(
            checklist.id,
            ChallengeUpdate(objectives=[ObjectiveCreate(title="Tent"), ObjectiveCreate(title="Map")]),
        )
        assert [o.target_value for o in updated.objectives] == [1, 1]
        assert updated.total_points == 2

    def test_update_missing(self, manager):
        """Updating an unknown challenge returns None."""
        assert manager.update_challenge("nope", ChallengeUpdate(title="x")) is None

    def test_delete_challenge(self, manager, db, run_challenge):
        """Deleting removes the challenge and its entries."""
        self.log(manager, run_challenge.id, 4, at(2))

        assert manager.delete_challenge(run_challenge.id)
        assert manager.get_challenge(run_challenge.id) is None
        assert db.list_entries(challenge_id=run_challenge.id) == []
        assert not manager.delete_challenge(run_challenge.id)

    def test_legacy_collection_type(self, manager, db):
        """Challenges stored as "collection" load as checklists."""
        challenge = manager.create_challenge(
            ChallengeCreate(title="Old", objectives=[ObjectiveCreate(title="A", target_value=1)])
        )
        with db.get_session() as session:
            session.get(Challenge, challenge.id).challenge_type = "collection"

        definition = manager.to_definition(manager.get_challenge(challenge.id))
        assert definition.challenge_type is ChallengeType.CHECKLIST

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def test_join_twice(self, manager, run_challenge):
        """A user can join only once."""
        with pytest.raises(ValueError):
            manager.join_challenge(run_challenge.id, "alice")

    def test_join_unknown_challenge(self, manager):
        """Joining a missing challenge is an error."""
        with pytest.raises(ValueError):
            manager.join_challenge("nope", "alice")

    def test_repeating_window(self, manager):
        """Repeating challenges give each user a window of the same length."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Week of habits",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 7),
                is_repeating=True,
                objectives=[ObjectiveCreate(title="Read", target_value=1)],
            )
        )

        participant = manager.join_challenge(challenge.id, "alice", start_date=date(2024, 3, 4))

        assert participant.start_date == "2024-03-04"
        assert participant.end_date == "2024-03-10"
        definition = manager.to_definition(manager.get_challenge(challenge.id))
        assert definition.participant_windows["alice"].end_date == "2024-03-10"

    def test_leave(self, manager, run_challenge):
        """Leaving removes the participant."""
        assert manager.leave_challenge(run_challenge.id, "bob")
        assert [p.user_id for p in manager.get_participants(run_challenge.id)] == ["alice"]
        assert not manager.leave_challenge(run_challenge.id, "bob")

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def test_log_rejects_unknown_objective(self, manager, run_challenge):
        """Entries must target an objective of the challenge."""
        with pytest.raises(ValueError):
            self.log(manager, run_challenge.id, 1, at(2), objective_id="swim")

    def test_log_rejects_non_participant(self, manager, run_challenge):
        """Only participants can log progress."""
        with pytest.raises(ValueError):
            self.log(manager, run_challenge.id, 1, at(2), user_id="mallory")

    def test_log_rejects_zero(self, manager, run_challenge):
        """A zero value never reaches storage."""
        with pytest.raises(ValidationError):
            self.log(manager, run_challenge.id, 0, at(2))

    def test_progress_cache_invalidated_on_write(self, manager, run_challenge):
        """New entries are reflected immediately."""
        self.log(manager, run_challenge.id, 4, at(2))
        assert manager.get_progress("alice", run_challenge.id) == {"run": 4}
        assert ("alice", run_challenge.id) in manager.cache

        self.log(manager, run_challenge.id, 3, at(3))
        assert ("alice", run_challenge.id) not in manager.cache
        assert manager.get_progress("alice", run_challenge.id) == {"run": 7}

    def test_reset_objective(self, manager, run_challenge):
        """Reset deletes every entry of the objective and clears progress."""
        self.log(manager, run_challenge.id, 4, at(2))
        self.log(manager, run_challenge.id, 3, at(3))
        self.log(manager, run_challenge.id, 5, at(3), user_id="bob")
        manager.get_progress("alice", run_challenge.id)

        assert manager.reset_objective("alice", run_challenge.id, "run") == 2
        assert manager.get_progress("alice", run_challenge.id) == {"run": 0}
        assert manager.get_progress("bob", run_challenge.id) == {"run": 5}

    def test_bucket_entries(self, manager, run_challenge):
        """Day and week buckets select entries by local date."""
        self.log(manager, run_challenge.id, 1, at(1, 0))
        self.log(manager, run_challenge.id, 2, at(3, 23))
        self.log(manager, run_challenge.id, 3, at(8, 6))

        day = manager.get_bucket_entries("alice", run_challenge.id, "run", date(2024, 1, 3))
        week = manager.get_bucket_entries(
            "alice", run_challenge.id, "run", date(2024, 1, 3), bucket="week"
        )

        assert [e.value for e in day] == [2]
        assert [e.value for e in week] == [1, 2]
        with pytest.raises(ValueError):
            manager.get_bucket_entries("alice", run_challenge.id, "run", date(2024, 1, 3), "month")

    def test_get_entries_window(self, manager, run_challenge):
        """Entry queries can be limited to whole days."""
        self.log(manager, run_challenge.id, 1, at(1))
        self.log(manager, run_challenge.id, 2, at(2))
        self.log(manager, run_challenge.id, 3, at(5))

        entries = manager.get_entries("alice", run_challenge.id, date(2024, 1, 2), date(2024, 1, 5))

        assert [e.value for e in entries] == [2, 3]
        assert entries[0].created_at == at(2)

    # ------------------------------------------------------------------
    # Progress and ranking
    # ------------------------------------------------------------------

    def test_scenario_summary_and_completion(self, manager, run_challenge):
        """4 + 3 km is 35 of 50 points; 5 more km completes the challenge."""
        self.log(manager, run_challenge.id, 4, at(2))
        self.log(manager, run_challenge.id, 3, at(3))

        summary = manager.get_progress_summary("alice", run_challenge.id)
        assert (summary.current, summary.total, summary.percent) == (35, 50, 70.0)
        assert manager.get_completion_time("alice", run_challenge.id) is None

        self.log(manager, run_challenge.id, 5, at(4))
        summary = manager.get_progress_summary("alice", run_challenge.id)
        assert summary.current == 50
        assert manager.get_completion_time("alice", run_challenge.id) == at(4)

    def test_leaderboard(self, manager, run_challenge):
        """Finishers rank first; every participant is listed."""
        manager.join_challenge(run_challenge.id, "carol")
        self.log(manager, run_challenge.id, 12, at(5), user_id="bob")
        self.log(manager, run_challenge.id, 10, at(3), user_id="carol")
        self.log(manager, run_challenge.id, 2, at(2))

        rows = manager.get_leaderboard(run_challenge.id)

        assert [r.user_id for r in rows] == ["carol", "bob", "alice"]
        assert [r.position for r in rows] == [1, 2, 3]
        assert [r.completion_order for r in rows] == [1, 2, None]
        assert rows[1].score == 50 and rows[1].uncapped_score == 60

    def test_completed_days(self, manager):
        """Days with every objective logged are listed in order."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Habits",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 7),
                objectives=[
                    ObjectiveCreate(id="read", title="Read", target_value=1),
                    ObjectiveCreate(id="walk", title="Walk", target_value=1),
                ],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        for day, objective in ((3, "read"), (3, "walk"), (1, "walk"), (1, "read"), (2, "read")):
            self.log(manager, challenge.id, 1, at(day), objective_id=objective)

        assert manager.get_completed_days("alice", challenge.id) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
        ]
        summary = manager.get_progress_summary("alice", challenge.id)
        assert (summary.current, summary.total) == (5, 7)

    def test_check_bingo_fires_once(self, manager):
        """A completed row is announced once and remembered."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Bingo",
                challenge_type=ChallengeType.BINGO,
                objectives=[
                    ObjectiveCreate(id=f"cell-{i}", title=f"Cell {i}", target_value=1)
                    for i in range(25)
                ],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        for i in range(4):
            self.log(manager, challenge.id, 1, at(1, i), objective_id=f"cell-{i}")
        assert manager.check_bingo("alice", challenge.id) is None

        self.log(manager, challenge.id, 1, at(1, 10), objective_id="cell-4")
        assert manager.check_bingo("alice", challenge.id) == "row-0"
        assert manager.check_bingo("alice", challenge.id) is None
        assert manager.get_announced_lines("alice", challenge.id) == ["row-0"]

    def test_collaborative_progress(self, manager):
        """Collaborative challenges share one progress map."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Team distance",
                is_collaborative=True,
                objectives=[ObjectiveCreate(id="km", title="Distance", target_value=100)],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        manager.join_challenge(challenge.id, "bob")
        self.log(manager, challenge.id, 30, at(1), objective_id="km")
        assert manager.get_progress("alice", challenge.id) == {"km": 30}

        self.log(manager, challenge.id, 25, at(2), user_id="bob", objective_id="km")
        assert manager.get_progress("alice", challenge.id) == {"km": 55}
        assert manager.get_progress("bob", challenge.id) == {"km": 55}

    def test_progress_unknown_challenge(self, manager):
        """Progress queries on a missing challenge raise."""
        with pytest.raises(ValueError):
            manager.get_progress("alice", "nope")

    def test_entries_outside_window_ignored(self, manager):
        """Entries before the start or after the end never count."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Three days",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 8),
                end_date=date(2024, 1, 10),
                objectives=[ObjectiveCreate(id="read", title="Read")],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        for day in (1, 2, 3, 11):
            self.log(manager, challenge.id, 1, at(day), objective_id="read")

        assert manager.get_progress("alice", challenge.id) == {"read": 0}
        assert manager.get_completion_time("alice", challenge.id) is None
        assert manager.get_completed_days("alice", challenge.id) == []
        assert manager.get_leaderboard(challenge.id)[0].completion_time is None

        for day in (8, 9, 10):
            self.log(manager, challenge.id, 1, at(day), objective_id="read")

        assert manager.get_progress("alice", challenge.id) == {"read": 3}
        assert manager.get_completion_time("alice", challenge.id) == at(10)
        assert manager.get_leaderboard(challenge.id)[0].completion_order == 1

    def test_repeating_progress_uses_own_window(self, manager):
        """A repeating challenge only counts entries in the user's window."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Week of reading",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 7),
                is_repeating=True,
                objectives=[ObjectiveCreate(id="read", title="Read")],
            )
        )
        manager.join_challenge(challenge.id, "alice", start_date=date(2024, 3, 4))
        self.log(manager, challenge.id, 1, at(2), objective_id="read")
        self.log(manager, challenge.id, 1, at(5, month=3), objective_id="read")

        assert manager.get_progress("alice", challenge.id) == {"read": 1}
        assert manager.get_completed_days("alice", challenge.id) == [date(2024, 3, 5)]

    def test_user_progress_rows(self, manager, run_challenge):
        """Progress rows follow objective order."""
        self.log(manager, run_challenge.id, 4, at(2))

        rows = manager.get_user_progress("alice", run_challenge.id)

        assert [(r.user_id, r.objective_id, r.current_value) for r in rows] == [
            ("alice", "run", 4)
        ]

    def test_day_calendar(self, manager):
        """Every day of the window is listed with its completion flag."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Three days",
                challenge_type=ChallengeType.COMPLETION,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 3),
                objectives=[ObjectiveCreate(id="read", title="Read")],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        self.log(manager, challenge.id, 1, at(2), objective_id="read")

        assert manager.get_day_calendar("alice", challenge.id) == [
            (date(2024, 1, 1), False),
            (date(2024, 1, 2), True),
            (date(2024, 1, 3), False),
        ]

    def test_capped_checklist_leaderboard(self, manager):
        """Title-only checklist items score a point each and need every tick."""
        challenge = manager.create_challenge(
            ChallengeCreate(
                title="Packing list",
                challenge_type=ChallengeType.CHECKLIST,
                caped_points=True,
                objectives=[ObjectiveCreate(id=i, title=i) for i in ("tent", "stove", "map")],
            )
        )
        manager.join_challenge(challenge.id, "alice")
        manager.join_challenge(challenge.id, "bob")
        for hour, item in enumerate(("tent", "stove", "map")):
            self.log(manager, challenge.id, 1, at(1, 8 + hour), user_id="bob", objective_id=item)
        self.log(manager, challenge.id, 1, at(2, 8), objective_id="tent")

        rows = manager.get_leaderboard(challenge.id)

        assert [(r.user_id, r.score, r.completion_order) for r in rows] == [
            ("bob", 3, 1),
            ("alice", 1, None),
        ]
        assert rows[0].completion_time == at(1, 10)
        assert rows[1].completion_time is None
