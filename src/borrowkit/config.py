"""Configuration management for borrowkit.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Backend
    api_url: str
    request_timeout: float  # seconds

    # Credentials
    token_path: Path

    # Local record store
    db_path: Path

    # Lending
    default_loan_days: int

    # Realtime
    realtime_reconnect_delay: float  # seconds

    # Logging
    log_level: str
    log_file: Optional[Path]

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        home = Path.home() / ".borrowkit"
        log_file = os.environ.get("BORROWKIT_LOG_FILE")

        return cls(
            api_url=os.environ.get("BORROWKIT_API_URL", "http://localhost:8090").rstrip("/"),
            request_timeout=float(os.environ.get("BORROWKIT_TIMEOUT", "10")),
            token_path=Path(
                os.environ.get("BORROWKIT_TOKEN_PATH", str(home / "tokens.json"))
            ).expanduser(),
            db_path=Path(
                os.environ.get("BORROWKIT_DB_PATH", str(home / "records.db"))
            ).expanduser(),
            default_loan_days=int(os.environ.get("BORROWKIT_DEFAULT_LOAN_DAYS", "14")),
            realtime_reconnect_delay=float(
                os.environ.get("BORROWKIT_REALTIME_RECONNECT_DELAY", "2.0")
            ),
            log_level=os.environ.get("BORROWKIT_LOG_LEVEL", "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if urlparse(self.api_url).scheme not in ("http", "https"):
            errors.append(f"BORROWKIT_API_URL must be an http(s) URL: {self.api_url}")
        if self.request_timeout <= 0:
            errors.append("BORROWKIT_TIMEOUT must be positive")
        if self.default_loan_days < 1:
            errors.append("BORROWKIT_DEFAULT_LOAN_DAYS must be at least 1")

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
