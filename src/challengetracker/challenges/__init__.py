"""Challenges module.

Provides functionality for:
- Creating and editing challenges with ordered objectives
- Joining challenges, with per-user windows for repeating challenges
- Logging and resetting progress entries
- Progress, completion, bingo and leaderboard queries
"""

from .manager import ChallengeManager
from .models import BingoAnnouncement, Challenge, ChallengeObjective, ChallengeParticipant
from .schemas import (
    ChallengeCreate,
    ChallengeResponse,
    ChallengeUpdate,
    EntryCreate,
    ObjectiveCreate,
    ObjectiveResponse,
)

__all__ = [
    "ChallengeManager",
    "BingoAnnouncement",
    "Challenge",
    "ChallengeObjective",
    "ChallengeParticipant",
    "ChallengeCreate",
    "ChallengeResponse",
    "ChallengeUpdate",
    "EntryCreate",
    "ObjectiveCreate",
    "ObjectiveResponse",
]
