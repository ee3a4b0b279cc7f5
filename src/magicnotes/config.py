"""Configuration module for MagicNotes."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from magicnotes import __version__

# Project-level .env, anchored to __file__ so the process CWD does not matter
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default database
_USER_ENV = Path.home() / ".magicnotes" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Fixed limits of the authoring tools
CONTEXT_CHAR_LIMIT = 5000
ATTACHMENT_MAX_BYTES = 5 * 1024 * 1024
MIN_PASSWORD_LENGTH = 4
EDITOR_CHAR_LIMIT = 10_000
WORDS_PER_MINUTE = 200


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


class MagicNotesConfig(BaseModel):
    """Configuration for the MagicNotes server."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("MAGICNOTES_BASE_DIR", "."))
    )
    # Key-value store location
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("MAGICNOTES_DATABASE_PATH", "data/magicnotes.db")
        )
    )
    # Quiescence delay before an editor draft is committed
    autosave_delay: float = Field(
        default_factory=lambda: float(os.getenv("MAGICNOTES_AUTOSAVE_DELAY", "1.5"))
    )
    # AI backend (OpenAI-compatible chat completions endpoint)
    ai_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "MAGICNOTES_AI_BASE_URL", "https://openrouter.ai/api/v1"
        )
    )
    ai_model: str = Field(
        default_factory=lambda: os.getenv(
            "MAGICNOTES_AI_MODEL", "google/gemini-2.5-flash"
        )
    )
    ai_api_key: str = Field(
        default_factory=lambda: os.getenv(
            "MAGICNOTES_AI_API_KEY", os.getenv("OPENROUTER_API_KEY", "")
        )
    )
    # No timeout unless configured
    ai_timeout: Optional[float] = Field(
        default_factory=lambda: _optional_float("MAGICNOTES_AI_TIMEOUT")
    )
    ai_language: str = Field(
        default_factory=lambda: os.getenv("MAGICNOTES_AI_LANGUAGE", "English")
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("MAGICNOTES_SERVER_NAME", "magicnotes"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_timing(self) -> "MagicNotesConfig":
        """Reject delays and timeouts that would never fire."""
        if self.autosave_delay <= 0:
            raise ValueError("autosave_delay must be > 0")
        if self.ai_timeout is not None and self.ai_timeout <= 0:
            raise ValueError("ai_timeout must be > 0 when set")
        if not self.ai_api_key:
            logger.debug("No AI API key configured; AI actions will report errors")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = MagicNotesConfig()
