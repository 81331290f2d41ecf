"""SQLite database operations.

Handles database connection, session management, and entry storage.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Entry, format_timestamp

logger = logging.getLogger(__name__)


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     CHALLENGETRACKER_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "CHALLENGETRACKER_DB_PATH",
                str(Path.home() / ".challengetracker" / "challenges.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import challenge models to register them with Base
        from ..challenges.models import (  # noqa: F401
            BingoAnnouncement,
            Challenge,
            ChallengeObjective,
            ChallengeParticipant,
        )

        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Entry Operations
    # ========================================================================

    def insert_entry(
        self,
        user_id: str,
        challenge_id: str,
        objective_id: str,
        value: float,
        created_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Entry:
        """Insert a progress entry.

        A value of 0 is never written; clearing progress goes through
        `delete_entries`.
        """
        if value == 0:
            raise ValueError("Entry value must not be 0")

        def _create(s: Session) -> Entry:
            entry = Entry(
                user_id=user_id,
                challenge_id=challenge_id,
                objective_id=objective_id,
                value=value,
                notes=notes,
            )
            if created_at is not None:
                entry.created_at = format_timestamp(created_at)
            s.add(entry)
            s.flush()
            return entry

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                entry = _create(s)
                s.expunge(entry)
                return entry

    def delete_entries(
        self,
        user_id: str,
        challenge_id: str,
        objective_id: str,
        session: Optional[Session] = None,
    ) -> int:
        """Delete every entry of one objective for one user.

        Runs as a single statement inside one transaction, so a reset either
        removes all entries or none.

        Returns:
            Number of entries deleted
        """

        def _delete(s: Session) -> int:
            stmt = delete(Entry).where(
                Entry.user_id == user_id,
                Entry.challenge_id == challenge_id,
                Entry.objective_id == objective_id,
            )
            return s.execute(stmt).rowcount or 0

        if session:
            count = _delete(session)
        else:
            with self.get_session() as s:
                count = _delete(s)
        logger.debug(
            "Deleted %d entries for %s/%s/%s", count, user_id, challenge_id, objective_id
        )
        return count

    def list_entries(
        self,
        user_id: Optional[str] = None,
        challenge_id: Optional[str] = None,
        objective_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> list[Entry]:
        """List entries, oldest first.

        Args:
            user_id: Filter by user
            challenge_id: Filter by challenge
            objective_id: Filter by objective
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at

        Returns:
            Matching entries
        """

        def _get(s: Session) -> list[Entry]:
            stmt = select(Entry)
            if user_id is not None:
                stmt = stmt.where(Entry.user_id == user_id)
            if challenge_id is not None:
                stmt = stmt.where(Entry.challenge_id == challenge_id)
            if objective_id is not None:
                stmt = stmt.where(Entry.objective_id == objective_id)
            if start is not None:
                stmt = stmt.where(Entry.created_at >= format_timestamp(start))
            if end is not None:
                stmt = stmt.where(Entry.created_at < format_timestamp(end))
            stmt = stmt.order_by(Entry.created_at, Entry.id)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                entries = _get(s)
                for entry in entries:
                    s.expunge(entry)
                return entries


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
