"""Configuration module for the snippet vault."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from snipvault.exceptions import ConfigError

# Load environment variables from the project root .env file, then the
# user-level one next to the snippets.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")
load_dotenv(Path.home() / ".snipvault" / ".env")


logger = logging.getLogger(__name__)

DATA_DIR_ENV = "SNIPVAULT_DATA_DIR"
CONFIG_PATH_ENV = "SNIPVAULT_CONFIG_PATH"
DATA_DIR_KEY = "data_directory"


def expand_path(path: str) -> str:
    """Expand ``~`` and environment variables in a path and normalise it."""
    if not path:
        return path
    return os.path.normpath(os.path.expandvars(os.path.expanduser(path)))


def default_data_dir() -> Path:
    return Path.home() / ".snipvault" / "snippets"


def get_config_path() -> Path:
    """Path of the YAML config file (``SNIPVAULT_CONFIG_PATH`` overrides)."""
    override = os.getenv(CONFIG_PATH_ENV)
    if override:
        return Path(expand_path(override))
    return Path.home() / ".config" / "snipvault" / "config.yaml"


def read_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the YAML config file. A missing file reads as empty.

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping.
    """
    path = path or get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to read config file {path}", original_error=e
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def resolve_data_dir(config_path: Optional[Path] = None) -> Path:
    """Resolve the snippets directory.

    Order: ``SNIPVAULT_DATA_DIR`` environment variable, then the
    ``data_directory`` key of the config file, then the default
    ``~/.snipvault/snippets``.
    """
    env_dir = os.getenv(DATA_DIR_ENV)
    if env_dir:
        return Path(expand_path(env_dir))

    file_dir = read_config_file(config_path).get(DATA_DIR_KEY)
    if file_dir:
        if not isinstance(file_dir, str):
            raise ConfigError(
                f"'{DATA_DIR_KEY}' must be a string", config_key=DATA_DIR_KEY
            )
        return Path(expand_path(file_dir))

    return default_data_dir()


class SnipVaultConfig(BaseModel):
    """Configuration for the snippet vault."""

    # Directory holding the snippet record files
    data_dir: Path = Field(default_factory=resolve_data_dir)
    # Record file extension used for discovery
    file_extension: str = Field(
        default_factory=lambda: os.getenv("SNIPVAULT_FILE_EXTENSION", ".md")
    )
    # Logging configuration
    log_dir: Path = Field(
        default_factory=lambda: Path(
            expand_path(os.getenv("SNIPVAULT_LOG_DIR", "~/.snipvault/logs"))
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("SNIPVAULT_LOG_LEVEL", "INFO").upper()
    )

    @field_validator("file_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        v = v.strip()
        if not v or v == ".":
            raise ValueError("file_extension cannot be empty")
        return v if v.startswith(".") else f".{v}"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return v

    def get_data_dir(self) -> Path:
        """Absolute snippets directory (not created here)."""
        return self.data_dir.expanduser().absolute()

    def get_log_level(self) -> int:
        return getattr(logging, self.log_level)


def load_config() -> SnipVaultConfig:
    """Build a fresh config from the current environment and config file."""
    return SnipVaultConfig()


def save_config(data_dir: str, path: Optional[Path] = None) -> Path:
    """Write ``data_directory`` to the YAML config file, keeping other keys.

    Returns:
        The config file path.
    """
    path = path or get_config_path()
    data = read_config_file(path)
    data[DATA_DIR_KEY] = data_dir
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigError(
            f"Failed to write config file {path}", original_error=e
        ) from e
    logger.info(f"Saved data directory {data_dir} to {path}")
    return path


# Create a global config instance
config = load_config()
