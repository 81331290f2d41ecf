"""SQLAlchemy ORM models for local SQLite database.

Tables:
- entries: Timestamped progress submissions against objectives
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def format_timestamp(ts: datetime) -> str:
    """Fixed-width UTC ISO string, so stored timestamps sort as text."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


class Entry(Base):
    """Entry model - one progress submission.

    Entries are append-only; resetting an objective deletes its entries.
    """

    __tablename__ = "entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    challenge_id: Mapped[str] = mapped_column(String(36), nullable=False)
    objective_id: Mapped[str] = mapped_column(String(36), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)

    # UTC, fixed width
    created_at: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_now)

    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_entries_user_challenge", "user_id", "challenge_id", "objective_id"),
        Index("ix_entries_challenge_created", "challenge_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Entry(user_id={self.user_id}, objective_id={self.objective_id}, "
            f"value={self.value}, created_at={self.created_at})>"
        )

    @property
    def created_at_dt(self) -> datetime:
        """Parsed UTC timestamp."""
        return datetime.fromisoformat(self.created_at)
