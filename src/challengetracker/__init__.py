"""challengetracker - gamified challenges with progress, points and leaderboards."""

__version__ = "0.1.0"
