"""SQLAlchemy models for challenges.

Tables:
- challenges: Challenge definitions
- objectives: Ordered objectives of a challenge
- challenge_participants: Users who joined, with their own window
- bingo_announcements: Bingo lines already announced to a user
"""

from typing import Optional

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, generate_uuid, utc_now


class Challenge(Base):
    """Challenge model - stores challenge definitions."""

    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # standard, bingo, completion, weekly or checklist
    challenge_type: Mapped[str] = mapped_column(String(20), default="standard")

    # Time period (ISO dates); end is optional for open-ended challenges
    start_date: Mapped[Optional[str]] = mapped_column(String(10))
    end_date: Mapped[Optional[str]] = mapped_column(String(10))

    # Scoring flags
    caped_points: Mapped[bool] = mapped_column(Boolean, default=False)
    is_repeating: Mapped[bool] = mapped_column(Boolean, default=False)
    is_collaborative: Mapped[bool] = mapped_column(Boolean, default=False)

    # Denominator for percent displays, computed on write
    total_points: Mapped[float] = mapped_column(Float, default=0.0)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    # Relationships
    objectives: Mapped[list["ChallengeObjective"]] = relationship(
        "ChallengeObjective",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeObjective.position",
        lazy="selectin",
    )
    participants: Mapped[list["ChallengeParticipant"]] = relationship(
        "ChallengeParticipant",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeParticipant.joined_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Challenge(id={self.id}, title='{self.title}', type={self.challenge_type})>"

    @property
    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]


class ChallengeObjective(Base):
    """One objective of a challenge; bingo cells are laid out by position."""

    __tablename__ = "objectives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_value: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[str] = mapped_column(String(50), default="")
    points_per_unit: Mapped[float] = mapped_column(Float, default=1.0)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="objectives")

    def __repr__(self) -> str:
        return f"<ChallengeObjective(id={self.id}, title='{self.title}', target={self.target_value})>"


class ChallengeParticipant(Base):
    """A user's membership in a challenge."""

    __tablename__ = "challenge_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Per-user window of a repeating challenge
    start_date: Mapped[Optional[str]] = mapped_column(String(10))
    end_date: Mapped[Optional[str]] = mapped_column(String(10))

    joined_at: Mapped[str] = mapped_column(String(32), default=utc_now)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participant"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeParticipant(challenge_id={self.challenge_id}, user_id={self.user_id})>"


class BingoAnnouncement(Base):
    """A bingo line that has already been announced to a user."""

    __tablename__ = "bingo_announcements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    line_key: Mapped[str] = mapped_column(String(20), nullable=False)
    announced_at: Mapped[str] = mapped_column(String(32), default=utc_now)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", "line_key", name="uq_bingo_line"),
    )
