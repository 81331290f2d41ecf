"""Challenge manager: storage glue around the progress engine."""

import logging
from datetime import date, datetime, tzinfo
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..config import get_config
from ..db.models import Entry
from ..db.sqlite import Database, get_db
from ..engine.aggregation import (
    aggregate_collaborative,
    aggregate_progress,
    build_user_progress,
    completed_days,
)
from ..engine.bingo import completed_objective_ids, detect_bingo_line
from ..engine.cache import ProgressCache
from ..engine.completion import compute_completion_time
from ..engine.dates import days_in_range, parse_date, utc_window, week_end, week_start
from ..engine.leaderboard import rank_leaderboard
from ..engine.periods import challenge_duration, effective_window, entry_window
from ..engine.points import challenge_total_points, progress_summary
from ..engine.schemas import (
    ChallengeDefinition,
    ChallengeType,
    LeaderboardEntry,
    Objective,
    ParticipantWindow,
    ProgressEntry,
    ProgressSummary,
    UserProgress,
)
from .models import BingoAnnouncement, Challenge, ChallengeObjective, ChallengeParticipant
from .schemas import (
    ChallengeCreate,
    ChallengeUpdate,
    EntryCreate,
    ObjectiveCreate,
    check_weekly_range,
    normalize_objectives,
)

logger = logging.getLogger(__name__)


class ChallengeManager:
    """Manages challenges, participants and progress entries."""

    def __init__(
        self,
        db: Optional[Database] = None,
        cache: Optional[ProgressCache] = None,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize challenge manager.

        Args:
            db: Database instance
            cache: Progress cache; defaults to one using the configured TTL
            tz: Timezone for local dates; defaults to the configured zone
        """
        config = get_config()
        self.db = db or get_db()
        self.cache = cache if cache is not None else ProgressCache(ttl=config.cache_ttl)
        self.tz = tz if tz is not None else config.get_tzinfo()

    def _today(self) -> date:
        return datetime.now(self.tz).date()

    # ------------------------------------------------------------------
    # Challenge CRUD
    # ------------------------------------------------------------------

    def _fetch(self, session: Session, challenge_id: str) -> Optional[Challenge]:
        stmt = (
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        return session.execute(stmt).scalar_one_or_none()

    def _build_objectives(self, objectives: list[ObjectiveCreate]) -> list[ChallengeObjective]:
        built = []
        for position, data in enumerate(objectives):
            objective = ChallengeObjective(
                position=position,
                title=data.title,
                description=data.description,
                target_value=data.target_value,
                unit=data.unit,
                points_per_unit=data.points_per_unit,
            )
            if data.id:
                objective.id = data.id
            built.append(objective)
        return built

    def _refresh_total_points(self, session: Session, challenge: Challenge) -> None:
        session.flush()
        challenge.total_points = challenge_total_points(
            self.to_definition(challenge), today=self._today()
        )

    def create_challenge(self, data: ChallengeCreate) -> Challenge:
        """Create a new challenge.

        Args:
            data: Challenge creation data

        Returns:
            Created challenge
        """
        ids = [o.id for o in data.objectives if o.id]
        if len(ids) != len(set(ids)):
            raise ValueError("Objective ids must be unique")

        with self.db.get_session() as session:
            challenge = Challenge(
                title=data.title,
                description=data.description,
                challenge_type=data.challenge_type.value,
                start_date=data.start_date.isoformat() if data.start_date else None,
                end_date=data.end_date.isoformat() if data.end_date else None,
                caped_points=data.caped_points,
                is_repeating=data.is_repeating,
                is_collaborative=data.is_collaborative,
            )
            challenge.objectives = self._build_objectives(data.objectives)

            session.add(challenge)
            self._refresh_total_points(session, challenge)
            session.commit()

            challenge = self._fetch(session, challenge.id)
            session.expunge(challenge)

        logger.info("Created challenge %s (%s)", challenge.id, challenge.challenge_type)
        return challenge

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        """Get a challenge by ID.

        Args:
            challenge_id: Challenge ID

        Returns:
            Challenge or None
        """
        with self.db.get_session() as session:
            challenge = self._fetch(session, challenge_id)
            if challenge:
                session.expunge(challenge)
            return challenge

    def list_challenges(
        self,
        challenge_type: Optional[ChallengeType] = None,
        user_id: Optional[str] = None,
    ) -> list[Challenge]:
        """List challenges.

        Args:
            challenge_type: Filter by type
            user_id: Only challenges this user has joined

        Returns:
            List of challenges
        """
        with self.db.get_session() as session:
            stmt = select(Challenge)

            if challenge_type:
                stmt = stmt.where(Challenge.challenge_type == challenge_type.value)

            if user_id:
                stmt = stmt.join(ChallengeParticipant).where(
                    ChallengeParticipant.user_id == user_id
                )

            stmt = stmt.order_by(Challenge.created_at.desc(), Challenge.title)

            challenges = session.execute(stmt).scalars().all()
            for c in challenges:
                session.expunge(c)
            return list(challenges)

    def update_challenge(
        self,
        challenge_id: str,
        data: ChallengeUpdate,
    ) -> Optional[Challenge]:
        """Update a challenge.

        Objectives, when given, replace the existing set. Total points are
        recomputed and cached progress for the challenge is dropped.

        Args:
            challenge_id: Challenge ID
            data: Update data

        Returns:
            Updated challenge or None
        """
        with self.db.get_session() as session:
            challenge = self._fetch(session, challenge_id)

            if not challenge:
                return None

            update_data = data.model_dump(exclude_unset=True)

            for field, value in update_data.items():
                if field == "objectives":
                    continue
                elif field in ("start_date", "end_date"):
                    setattr(challenge, field, value.isoformat() if value else None)
                elif hasattr(challenge, field):
                    setattr(challenge, field, value)

            start = parse_date(challenge.start_date)
            end = parse_date(challenge.end_date)
            if start and end and end < start:
                raise ValueError("end_date must be after start_date")
            challenge_type = ChallengeType(challenge.challenge_type)
            check_weekly_range(challenge_type, start, end)

            if data.objectives is not None:
                objectives = normalize_objectives(challenge_type, data.objectives)
                # Flush the removals first so kept ids can be inserted again
                challenge.objectives.clear()
                session.flush()
                challenge.objectives.extend(self._build_objectives(objectives))

            self._refresh_total_points(session, challenge)
            session.commit()

            challenge = self._fetch(session, challenge_id)
            session.expunge(challenge)

        self.cache.invalidate_challenge(challenge_id)
        return challenge

    def delete_challenge(self, challenge_id: str) -> bool:
        """Delete a challenge with its entries.

        Args:
            challenge_id: Challenge ID

        Returns:
            True if deleted
        """
        with self.db.get_session() as session:
            challenge = self._fetch(session, challenge_id)

            if not challenge:
                return False

            session.execute(delete(Entry).where(Entry.challenge_id == challenge_id))
            session.execute(
                delete(BingoAnnouncement).where(BingoAnnouncement.challenge_id == challenge_id)
            )
            session.delete(challenge)

        self.cache.invalidate_challenge(challenge_id)
        return True

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def join_challenge(
        self,
        challenge_id: str,
        user_id: str,
        start_date: Optional[date] = None,
    ) -> ChallengeParticipant:
        """Add a user to a challenge.

        Repeating challenges get a personal window: it starts on
        `start_date` (default today) and lasts as long as the challenge's
        own window.

        Args:
            challenge_id: Challenge ID
            user_id: User joining
            start_date: First day of a repeating window

        Returns:
            The participant row
        """
        with self.db.get_session() as session:
            challenge = self._fetch(session, challenge_id)
            if not challenge:
                raise ValueError(f"Challenge not found: {challenge_id}")
            if user_id in challenge.participant_ids:
                raise ValueError(f"{user_id} already joined this challenge")

            participant = ChallengeParticipant(challenge_id=challenge_id, user_id=user_id)

            if challenge.is_repeating:
                start = start_date or self._today()
                duration = challenge_duration(self.to_definition(challenge))
                participant.start_date = start.isoformat()
                if duration is not None:
                    participant.end_date = (start + duration).isoformat()

            session.add(participant)
            session.commit()
            session.refresh(participant)
            session.expunge(participant)

        self.cache.invalidate_challenge(challenge_id)
        logger.info("%s joined challenge %s", user_id, challenge_id)
        return participant

    def leave_challenge(self, challenge_id: str, user_id: str) -> bool:
        """Remove a user from a challenge. Their entries are kept.

        Returns:
            True if the user was a participant
        """
        with self.db.get_session() as session:
            participant = session.execute(
                select(ChallengeParticipant).where(
                    ChallengeParticipant.challenge_id == challenge_id,
                    ChallengeParticipant.user_id == user_id,
                )
            ).scalar_one_or_none()

            if not participant:
                return False

            session.delete(participant)

        self.cache.invalidate_challenge(challenge_id)
        return True

    def get_participants(self, challenge_id: str) -> list[ChallengeParticipant]:
        """Participants of a challenge, in join order."""
        with self.db.get_session() as session:
            stmt = (
                select(ChallengeParticipant)
                .where(ChallengeParticipant.challenge_id == challenge_id)
                .order_by(ChallengeParticipant.joined_at)
            )
            participants = session.execute(stmt).scalars().all()
            for p in participants:
                session.expunge(p)
            return list(participants)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def log_progress(self, data: EntryCreate) -> Entry:
        """Record a progress entry.

        Args:
            data: Entry data

        Returns:
            The stored entry
        """
        challenge = self.get_challenge(data.challenge_id)
        if not challenge:
            logger.warning("Rejected entry for unknown challenge %s", data.challenge_id)
            raise ValueError(f"Challenge not found: {data.challenge_id}")
        if data.objective_id not in {o.id for o in challenge.objectives}:
            logger.warning(
                "Rejected entry for unknown objective %s in %s", data.objective_id, challenge.id
            )
            raise ValueError(f"Objective not found: {data.objective_id}")
        if data.user_id not in challenge.participant_ids:
            logger.warning("Rejected entry from non-participant %s", data.user_id)
            raise ValueError(f"{data.user_id} has not joined this challenge")

        entry = self.db.insert_entry(
            user_id=data.user_id,
            challenge_id=data.challenge_id,
            objective_id=data.objective_id,
            value=data.value,
            created_at=data.created_at,
            notes=data.notes,
        )

        if challenge.is_collaborative:
            self.cache.invalidate_challenge(challenge.id)
        else:
            self.cache.invalidate(data.user_id, challenge.id)
        return entry

    def reset_objective(self, user_id: str, challenge_id: str, objective_id: str) -> int:
        """Delete all of a user's entries for one objective.

        Returns:
            Number of entries removed
        """
        count = self.db.delete_entries(user_id, challenge_id, objective_id)
        self.cache.invalidate_challenge(challenge_id)
        logger.info("Reset %s/%s for %s (%d entries)", challenge_id, objective_id, user_id, count)
        return count

    @staticmethod
    def _to_progress_entry(entry: Entry) -> ProgressEntry:
        return ProgressEntry(
            user_id=entry.user_id,
            challenge_id=entry.challenge_id,
            objective_id=entry.objective_id,
            value=entry.value,
            created_at=entry.created_at_dt,
            notes=entry.notes,
        )

    def get_entries(
        self,
        user_id: str,
        challenge_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[ProgressEntry]:
        """A user's entries, optionally limited to whole local days.

        Args:
            user_id: User ID
            challenge_id: Challenge ID
            start: First local day
            end: Last local day (inclusive)

        Returns:
            Entries, oldest first
        """
        window = utc_window(start, end, self.tz) if start else None
        rows = self.db.list_entries(
            user_id=user_id,
            challenge_id=challenge_id,
            start=window[0] if window else None,
            end=window[1] if window else None,
        )
        return [self._to_progress_entry(e) for e in rows]

    def get_bucket_entries(
        self,
        user_id: str,
        challenge_id: str,
        objective_id: str,
        day: date,
        bucket: str = "day",
    ) -> list[ProgressEntry]:
        """Entries of one objective in the day or week containing `day`."""
        if bucket == "day":
            window = utc_window(day, day, self.tz)
        elif bucket == "week":
            window = utc_window(week_start(day), week_end(day), self.tz)
        else:
            raise ValueError(f"Unknown bucket: {bucket}")

        rows = self.db.list_entries(
            user_id=user_id,
            challenge_id=challenge_id,
            objective_id=objective_id,
            start=window[0],
            end=window[1],
        )
        return [self._to_progress_entry(e) for e in rows]

    # ------------------------------------------------------------------
    # Progress and ranking
    # ------------------------------------------------------------------

    def to_definition(self, challenge: Challenge) -> ChallengeDefinition:
        """Convert ORM rows into the engine's challenge definition."""
        return ChallengeDefinition(
            id=challenge.id,
            title=challenge.title,
            objectives=[
                Objective(
                    id=o.id,
                    title=o.title,
                    description=o.description,
                    target_value=o.target_value,
                    unit=o.unit or "",
                    points_per_unit=o.points_per_unit,
                )
                for o in challenge.objectives
            ],
            challenge_type=ChallengeType(challenge.challenge_type),
            start_date=challenge.start_date,
            end_date=challenge.end_date,
            caped_points=challenge.caped_points,
            is_repeating=challenge.is_repeating,
            is_collaborative=challenge.is_collaborative,
            participants=challenge.participant_ids,
            participant_windows={
                p.user_id: ParticipantWindow(start_date=p.start_date, end_date=p.end_date)
                for p in challenge.participants
                if p.start_date
            },
        )

    def _definition(self, challenge_id: str) -> ChallengeDefinition:
        challenge = self.get_challenge(challenge_id)
        if not challenge:
            raise ValueError(f"Challenge not found: {challenge_id}")
        return self.to_definition(challenge)

    def _window_entries(
        self, definition: ChallengeDefinition, user_id: Optional[str] = None
    ) -> list[ProgressEntry]:
        """Entries inside the user's effective window.

        Without a user, every participant's entries inside the challenge's
        own window are returned.
        """
        start, end = entry_window(definition, user_id, self.tz)
        rows = self.db.list_entries(
            user_id=user_id, challenge_id=definition.id, start=start, end=end
        )
        return [self._to_progress_entry(e) for e in rows]

    def _compute_progress(self, definition: ChallengeDefinition, user_id: str) -> dict[str, float]:
        if definition.is_collaborative:
            return aggregate_collaborative(definition, self._window_entries(definition), self.tz)
        return aggregate_progress(definition, self._window_entries(definition, user_id), self.tz)

    def get_progress(self, user_id: str, challenge_id: str) -> dict[str, float]:
        """Current value of every objective for a user.

        Only entries inside the user's window count. Collaborative
        challenges return the shared progress of all participants.
        """
        definition = self._definition(challenge_id)
        return self.cache.get_or_compute(
            user_id, challenge_id, lambda: self._compute_progress(definition, user_id)
        )

    def get_user_progress(self, user_id: str, challenge_id: str) -> list[UserProgress]:
        """Progress rows for a user, one per objective in challenge order."""
        definition = self._definition(challenge_id)
        return build_user_progress(definition, user_id, self.get_progress(user_id, challenge_id))

    def get_progress_summary(self, user_id: str, challenge_id: str) -> ProgressSummary:
        """Percent-complete values for a user."""
        definition = self._definition(challenge_id)
        progress = self.get_progress(user_id, challenge_id)
        return progress_summary(definition, progress, user_id=user_id, today=self._today())

    def get_completion_time(self, user_id: str, challenge_id: str) -> Optional[datetime]:
        """When the user first completed the challenge, or None."""
        definition = self._definition(challenge_id)
        return compute_completion_time(
            definition,
            self._window_entries(definition, user_id),
            user_id=user_id,
            tz=self.tz,
            today=self._today(),
        )

    def get_completed_days(self, user_id: str, challenge_id: str) -> list[date]:
        """Local days on which the user logged every objective, sorted."""
        definition = self._definition(challenge_id)
        entries = self._window_entries(definition, user_id)
        return sorted(completed_days(definition, entries, self.tz))

    def get_day_calendar(self, user_id: str, challenge_id: str) -> list[tuple[date, bool]]:
        """Every day of the user's window, flagged when it was completed.

        Open-ended windows only run up to today.
        """
        definition = self._definition(challenge_id)
        start, end = effective_window(definition, user_id)
        done = set(self.get_completed_days(user_id, challenge_id))
        return [(d, d in done) for d in days_in_range(start, end or self._today())]

    def get_leaderboard(self, challenge_id: str) -> list[LeaderboardEntry]:
        """Ranked leaderboard of every participant."""
        definition = self._definition(challenge_id)
        entries_by_user = {
            user_id: self._window_entries(definition, user_id)
            for user_id in definition.participants
        }
        return rank_leaderboard(definition, entries_by_user, tz=self.tz, today=self._today())

    def get_announced_lines(self, user_id: str, challenge_id: str) -> list[str]:
        with self.db.get_session() as session:
            stmt = (
                select(BingoAnnouncement.line_key)
                .where(
                    BingoAnnouncement.challenge_id == challenge_id,
                    BingoAnnouncement.user_id == user_id,
                )
                .order_by(BingoAnnouncement.announced_at)
            )
            return list(session.execute(stmt).scalars().all())

    def check_bingo(self, user_id: str, challenge_id: str) -> Optional[str]:
        """Announce the next completed bingo line, if any.

        The returned line is recorded so it is never announced again.

        Returns:
            Line key or None
        """
        definition = self._definition(challenge_id)
        progress = self.get_progress(user_id, challenge_id)
        announced = self.get_announced_lines(user_id, challenge_id)

        line = detect_bingo_line(
            definition, completed_objective_ids(definition, progress), announced
        )
        if line is None:
            return None

        with self.db.get_session() as session:
            session.add(
                BingoAnnouncement(challenge_id=challenge_id, user_id=user_id, line_key=line)
            )

        logger.info("Bingo %s for %s in %s", line, user_id, challenge_id)
        return line
