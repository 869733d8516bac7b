"""Configuration management for the circulation engine.

Loads configuration from environment variables and provides defaults.
Business rules (loan period, loan limits, fines) are constants in their
own modules and are deliberately not configurable here.
"""

import logging
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

    # Database
    db_path: Path
    lock_timeout: float  # seconds

    # Inventory
    strict_inventory: bool

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "CIRCULATION_DB_PATH",
            str(Path.home() / ".circulation" / "circulation.db"),
        )
        db_path = Path(db_path_str) if db_path_str == ":memory:" else Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            lock_timeout=float(os.environ.get("CIRCULATION_LOCK_TIMEOUT", "5.0")),
            strict_inventory=(
                os.environ.get("CIRCULATION_STRICT_INVENTORY", "true").lower() in _TRUE_VALUES
            ),
            log_level=os.environ.get("CIRCULATION_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.lock_timeout <= 0:
            errors.append(f"Lock timeout must be positive, got {self.lock_timeout}")

        if logging.getLevelName(self.log_level) == f"Level {self.log_level}":
            errors.append(f"Unknown log level: {self.log_level}")

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


def configure_logging(config: Optional[Config] = None) -> None:
    """Apply the configured log level to the ``circulation`` logger tree."""
    config = config or get_config()
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("circulation").setLevel(config.log_level)


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
