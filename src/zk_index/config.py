"""Configuration module for the note index."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from zk_index import __version__
from zk_index.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config
_USER_ENV = Path.home() / ".zk-index" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {value!r}", config_key=name
        ) from None


class IndexConfig(BaseModel):
    """Configuration for the note index."""

    # Notebook root; relative paths below are resolved against it
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ZK_INDEX_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ZK_INDEX_DATABASE_PATH", ".zk/notebook.db")
        )
    )
    # When True, the index lives in memory for the lifetime of the engine
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("ZK_INDEX_IN_MEMORY_DB", "false")
    )
    # Highlight markers wrapped around matched terms in snippets
    match_open_marker: str = Field(
        default_factory=lambda: os.getenv("ZK_INDEX_MATCH_OPEN", "<zk:match>")
    )
    match_close_marker: str = Field(
        default_factory=lambda: os.getenv("ZK_INDEX_MATCH_CLOSE", "</zk:match>")
    )
    snippet_ellipsis: str = Field(
        default_factory=lambda: os.getenv("ZK_INDEX_SNIPPET_ELLIPSIS", "…")
    )
    # Maximum number of tokens in a full-text snippet (FTS5 caps this at 64)
    snippet_max_tokens: int = Field(
        default_factory=lambda: _env_int("ZK_INDEX_SNIPPET_TOKENS", 20)
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("ZK_INDEX_LOG_LEVEL", "INFO").upper()
    )
    version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_snippet_config(self) -> "IndexConfig":
        """Validate highlight markers and snippet size.

        Raises ConfigurationError, which pydantic passes through unwrapped.
        """
        if not self.match_open_marker:
            raise ConfigurationError(
                "match markers cannot be empty", config_key="match_open_marker"
            )
        if not self.match_close_marker:
            raise ConfigurationError(
                "match markers cannot be empty", config_key="match_close_marker"
            )
        if not 1 <= self.snippet_max_tokens <= 64:
            raise ConfigurationError(
                "snippet_max_tokens must be between 1 and 64",
                config_key="snippet_max_tokens",
            )
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(
                "Unknown log level %r, falling back to INFO", self.log_level
            )
            self.log_level = "INFO"
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = IndexConfig()
