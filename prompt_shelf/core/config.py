"""
Configuration management for the Prompt Shelf.

Settings come from environment variables, optionally loaded from a .env file
with python-dotenv. Nothing is loaded implicitly at import time; callers use
load_home_env() (the CLI does this on start-up).
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .types import MergePolicy


class ConfigError(Exception):
    """Raised when configuration is invalid."""

    pass


DEFAULT_HOME = "~/.prompt_shelf"
DEFAULT_STORAGE_FILENAME = "prompts.csv"
ENV_FILE_ENV_VARS = ("PS_ENV_FILE", "PROMPT_SHELF_ENV_FILE")


@lru_cache(maxsize=32)
def load_config(env_path: Optional[str] = None, override: bool = False) -> None:
    """Explicitly load environment variables from the given .env file path."""
    if env_path:
        load_dotenv(dotenv_path=env_path, override=override)


class Config:
    """Configuration settings for the Prompt Shelf."""

    @property
    def home(self) -> Path:
        """Data directory holding the prompt file and debug logs (default: ~/.prompt_shelf)."""
        return Path(os.getenv("PS_HOME", DEFAULT_HOME)).expanduser()

    @property
    def storage_filename(self) -> str:
        """Name of the prompt CSV inside the data directory (default: prompts.csv)."""
        return os.getenv("PS_STORAGE_FILENAME", DEFAULT_STORAGE_FILENAME)

    @property
    def merge_policy(self) -> MergePolicy:
        """Import policy for id collisions (default: append)."""
        value = os.getenv("PS_MERGE_POLICY", MergePolicy.APPEND.value).strip().lower()
        try:
            return MergePolicy(value)
        except ValueError:
            raise ConfigError(f"PS_MERGE_POLICY must be one of: {', '.join(p.value for p in MergePolicy)} (got '{value}').")

    @property
    def capture_title_limit(self) -> int:
        """Maximum title length for quick capture (default: 80)."""
        raw = os.getenv("PS_CAPTURE_TITLE_LIMIT", "80")
        try:
            limit = int(raw)
        except ValueError:
            raise ConfigError(f"PS_CAPTURE_TITLE_LIMIT must be an integer (got '{raw}').")
        if limit < 4:
            raise ConfigError("PS_CAPTURE_TITLE_LIMIT must be at least 4.")
        return limit

    @property
    def debug(self) -> bool:
        return os.getenv("PS_DEBUG", "0") == "1"


# Global config instance
config = Config()


def get_home_env_path(home: Optional[Path] = None) -> Path:
    return (home or config.home) / ".env"


def load_home_env(home: Optional[Path] = None, override: bool = False) -> Optional[str]:
    """
    Load an environment file, if one is available.

    Load order (first match wins):
    1) Explicit env file path via PS_ENV_FILE or PROMPT_SHELF_ENV_FILE
    2) <home>/.env

    Returns the path loaded, or None if nothing was loaded.
    """
    for var in ENV_FILE_ENV_VARS:
        explicit = os.getenv(var)
        if explicit and Path(explicit).is_file():
            load_config(explicit, override=override)
            return explicit

    env_path = get_home_env_path(home)
    if env_path.is_file():
        load_config(str(env_path), override=override)
        return str(env_path)

    return None


def validate_config() -> None:
    """
    Validate all settings eagerly.

    Raises:
        ConfigError: If any setting is invalid
    """
    _ = config.merge_policy
    _ = config.capture_title_limit
    if not config.storage_filename or Path(config.storage_filename).name != config.storage_filename:
        raise ConfigError(f"PS_STORAGE_FILENAME must be a bare file name (got '{config.storage_filename}').")
