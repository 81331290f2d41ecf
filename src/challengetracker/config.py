"""Configuration management for challengetracker.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # IANA timezone for local dates; None uses the system zone
    timezone: Optional[str]

    # Progress cache
    cache_ttl: int  # seconds, 0 = until invalidated

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "CHALLENGETRACKER_DB_PATH",
            str(Path.home() / ".challengetracker" / "challenges.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            timezone=os.environ.get("CHALLENGETRACKER_TIMEZONE") or None,
            cache_ttl=int(os.environ.get("CHALLENGETRACKER_CACHE_TTL", "300")),
            log_level=os.environ.get("CHALLENGETRACKER_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                errors.append(f"Unknown timezone: {self.timezone}")

        if self.cache_ttl < 0:
            errors.append("Cache TTL must not be negative")

        if self.log_level not in LOG_LEVELS:
            errors.append(f"Unknown log level: {self.log_level}")

        return errors

    def get_tzinfo(self) -> Optional[tzinfo]:
        """Configured timezone, or None for the system zone."""
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
