"""Configuration management for the portability engine.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Engine configuration."""

    # Storage
    db_path: Path

    # Uploads
    max_upload_bytes: int

    # Duplicate detection
    duplicate_threshold: float
    title_weight: float
    author_weight: float

    # Rate limits
    exports_per_hour: int
    exports_per_day: int
    imports_per_hour: int
    imports_per_day: int

    # Logging
    log_level: str
    log_json: bool

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "HONTODANA_DB_PATH",
            str(Path.home() / ".hontodana" / "portability.db"),
        )
        db_path = Path(db_path_str).expanduser()

        max_upload_mb = int(os.environ.get("HONTODANA_MAX_UPLOAD_MB", "100"))

        return cls(
            db_path=db_path,
            max_upload_bytes=max_upload_mb * 1024 * 1024,
            duplicate_threshold=float(
                os.environ.get("HONTODANA_DUPLICATE_THRESHOLD", "0.8")
            ),
            title_weight=float(os.environ.get("HONTODANA_TITLE_WEIGHT", "0.7")),
            author_weight=float(os.environ.get("HONTODANA_AUTHOR_WEIGHT", "0.3")),
            exports_per_hour=int(os.environ.get("HONTODANA_EXPORTS_PER_HOUR", "10")),
            exports_per_day=int(os.environ.get("HONTODANA_EXPORTS_PER_DAY", "50")),
            imports_per_hour=int(os.environ.get("HONTODANA_IMPORTS_PER_HOUR", "5")),
            imports_per_day=int(os.environ.get("HONTODANA_IMPORTS_PER_DAY", "20")),
            log_level=os.environ.get("HONTODANA_LOG_LEVEL", "INFO").upper(),
            log_json=os.environ.get("HONTODANA_LOG_JSON", "false").lower()
            in ("1", "true", "yes"),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if abs((self.title_weight + self.author_weight) - 1.0) > 1e-6:
            errors.append(
                f"Title and author weights must sum to 1.0 "
                f"(got {self.title_weight} + {self.author_weight})"
            )

        if not 0.0 <= self.duplicate_threshold <= 1.0:
            errors.append(
                f"Duplicate threshold must be between 0 and 1: {self.duplicate_threshold}"
            )

        if self.max_upload_bytes <= 0:
            errors.append("Maximum upload size must be positive")

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


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
