"""Configuration management for libris.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Config:
    """Application configuration."""

    # Local mirror and offline queue
    db_path: Path

    # Remote store
    remote_url: Optional[str]
    remote_api_key: Optional[str]
    remote_timeout: float  # seconds

    # Scheduling rules
    reservation_horizon_days: int
    min_reservation_gap_days: int
    enforce_max_renewals: bool

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "LIBRIS_DB_PATH",
            str(Path.home() / ".libris" / "libris.db"),
        )

        return cls(
            db_path=Path(db_path_str).expanduser(),
            remote_url=os.environ.get("LIBRIS_REMOTE_URL"),
            remote_api_key=os.environ.get("LIBRIS_REMOTE_API_KEY"),
            remote_timeout=float(os.environ.get("LIBRIS_REMOTE_TIMEOUT", "10")),
            reservation_horizon_days=int(
                os.environ.get("LIBRIS_RESERVATION_HORIZON_DAYS", "90")
            ),
            min_reservation_gap_days=int(
                os.environ.get("LIBRIS_MIN_RESERVATION_GAP_DAYS", "15")
            ),
            enforce_max_renewals=(
                os.environ.get("LIBRIS_ENFORCE_MAX_RENEWALS", "true").lower() in _TRUE_VALUES
            ),
            log_level=os.environ.get("LIBRIS_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.remote_timeout <= 0:
            errors.append("LIBRIS_REMOTE_TIMEOUT must be positive")
        if self.reservation_horizon_days < 1:
            errors.append("LIBRIS_RESERVATION_HORIZON_DAYS must be at least 1")
        if self.min_reservation_gap_days < 0:
            errors.append("LIBRIS_MIN_RESERVATION_GAP_DAYS cannot be negative")

        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors

    def has_remote_config(self) -> bool:
        """Check if a remote store is configured."""
        return bool(self.remote_url)


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
