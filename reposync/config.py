"""Configuration file handling for git-repo-sync."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GIT_REPO_SYNC_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "git-repo-sync" / "config.json"


@dataclass
class SyncConfig:
    """Settings read from the configuration file.

    Every setting has a command line counterpart that takes precedence.
    """

    workers: int = 1
    """Number of parallel workers for file actions"""

    exclude: list[str] = field(default_factory=list)
    """Extra gitignore-style patterns, anchored at the local root"""

    gitignore: bool = True
    """Read .gitignore files and .git/info/exclude"""

    strict: bool = False
    """Fail on file/directory conflicts instead of replacing"""

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "<config>") -> "SyncConfig":
        """Build a config from parsed JSON.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        if not isinstance(data, dict):
            raise ConfigError(f"{source}: top level must be a JSON object")

        unknown = sorted(set(data) - {"workers", "exclude", "gitignore", "strict"})
        if unknown:
            raise ConfigError(f"{source}: unknown key(s): {', '.join(unknown)}")

        config = cls()
        if "workers" in data:
            workers = data["workers"]
            # bool is a subclass of int
            if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
                raise ConfigError(f"{source}: 'workers' must be a positive integer")
            config.workers = workers
        if "exclude" in data:
            exclude = data["exclude"]
            if not isinstance(exclude, list) or not all(
                isinstance(p, str) for p in exclude
            ):
                raise ConfigError(f"{source}: 'exclude' must be a list of strings")
            config.exclude = list(exclude)
        for key in ("gitignore", "strict"):
            if key in data:
                if not isinstance(data[key], bool):
                    raise ConfigError(f"{source}: '{key}' must be true or false")
                setattr(config, key, data[key])
        return config


def default_config_path() -> Path:
    """Return the config path from the environment or the default location."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[Path] = None) -> SyncConfig:
    """Load the configuration file.

    A missing file at the default location yields the default settings;
    a missing file that was asked for explicitly is an error.

    Args:
        path: Config file to read (None for the default location)

    Returns:
        SyncConfig with the file's settings

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    explicit = path is not None or bool(os.getenv(CONFIG_ENV_VAR))
    config_path = Path(path).expanduser() if path is not None else default_config_path()

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        logger.debug("No config file at %s, using defaults", config_path)
        return SyncConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{config_path}: invalid JSON: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    logger.debug("Loaded config from %s", config_path)
    return SyncConfig.from_dict(data, source=str(config_path))
