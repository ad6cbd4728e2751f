"""Manages configuration for apiq.

This module is responsible for loading, managing, and saving the application's
configuration settings. It aggregates settings from default values, TOML files,
and environment variables, providing a unified interface for accessing them.
"""

import copy
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from .. import __version__

logger = logging.getLogger(__name__)

# The default path for the user-specific global configuration file.
USER_CONFIG_PATH = Path.home() / ".config" / "apiq" / "config.toml"
PROJECT_CONFIG_NAME = "apiq.toml"


class Config:
    """Handles the configuration for the apiq application.

    This class loads configuration from multiple sources with a defined
    precedence:
    1.  Default values (lowest precedence).
    2.  Project-specific `apiq.toml` file.
    3.  User-level `~/.config/apiq/config.toml` file.
    4.  A custom configuration file specified at runtime (replaces 2 and 3).
    5.  Environment variables (highest precedence).

    Settings under `retry` are left empty by default so that each API client
    keeps its own retry defaults unless the user overrides them.

    Attributes:
        DEFAULT_CONFIG (Dict[str, Any]): A dictionary containing the default
            configuration values.
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "timeout": 30,  # Network request timeout in seconds.
        "pypi_url": "https://pypi.org/pypi/",
        "user_agent": f"apiq/{__version__}",
        "colors": True,
        "verbose": False,
        "github_token": None,  # Falls back to the GITHUB_TOKEN environment variable.
        "cache": {
            "dir": None,  # None means the system temp directory.
            "ttl": None,  # None means each client's own default.
        },
        "retry": {},
    }

    ENV_MAPPING = {
        "APIQ_TIMEOUT": "timeout",
        "APIQ_USER_AGENT": "user_agent",
        "APIQ_PYPI_URL": "pypi_url",
        "APIQ_COLORS": "colors",
        "APIQ_VERBOSE": "verbose",
        "APIQ_GITHUB_TOKEN": "github_token",
        "APIQ_CACHE_DIR": "cache.dir",
        "APIQ_CACHE_TTL": "cache.ttl",
        "APIQ_MAX_RETRIES": "retry.max_retries",
        "APIQ_RETRY_INITIAL_DELAY": "retry.initial_delay",
        "APIQ_RETRY_MAX_DELAY": "retry.max_delay",
        "APIQ_RETRY_BACKOFF_MULTIPLIER": "retry.backoff_multiplier",
        "APIQ_RETRY_JITTER": "retry.jitter",
        "APIQ_RETRY_STATUSES": "retry.retryable_statuses",
    }

    BOOL_KEYS = ("colors", "verbose", "jitter")
    INT_KEYS = ("timeout", "ttl", "max_retries")
    FLOAT_KEYS = ("initial_delay", "max_delay", "backoff_multiplier")
    INT_LIST_KEYS = ("retryable_statuses",)

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initializes the configuration manager.

        Args:
            config_path (Optional[Path]): An optional path to a specific
                configuration file to load. If provided, it takes precedence
                over default file locations.
        """
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self._load_config(config_path)

    def _load_config(self, config_path: Optional[Path] = None) -> None:
        if config_path:
            self._load_file_config(Path(config_path))
        else:
            self._load_default_configs()

        self._load_env_config()

    def _load_default_configs(self) -> None:
        """Loads configs from standard locations if they exist."""
        project_config = Path.cwd() / PROJECT_CONFIG_NAME
        if project_config.exists():
            self._load_file_config(project_config)

        if USER_CONFIG_PATH.exists():
            self._load_file_config(USER_CONFIG_PATH)

    def _merge_configs(self, base: Dict[str, Any], new: Dict[str, Any]) -> None:
        """Recursively merges a new config dict into a base dict.

        Args:
            base (Dict[str, Any]): The base configuration dictionary.
            new (Dict[str, Any]): The new configuration to merge in.
        """
        for key, value in new.items():
            if isinstance(value, dict) and key in base and isinstance(base[key], dict):
                self._merge_configs(base[key], value)
            else:
                base[key] = value

    def _load_file_config(self, config_path: Path) -> None:
        """Loads and merges configuration from a TOML file.

        An unreadable or invalid file is reported and skipped.

        Args:
            config_path (Path): The path to the TOML configuration file.
        """
        try:
            with open(config_path, "rb") as f:
                file_config = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Could not load config from {config_path}: {e}")
            return
        self._merge_configs(self.config, file_config)

    def _load_env_config(self) -> None:
        """Loads and merges configuration from environment variables."""
        for env_var, config_key in self.ENV_MAPPING.items():
            value = os.getenv(env_var)
            if value is not None:
                self._set_nested_key(config_key, value)

    def _set_nested_key(self, key_path: str, value: str) -> None:
        """Sets a value in the config dict using a dot-separated path.

        This method correctly parses and casts values from environment
        variables, which are always strings.

        Args:
            key_path (str): The dot-separated key (e.g., "retry.max_retries").
            value (str): The string value from the environment variable.
        """
        keys = key_path.split('.')
        target_config = self.config
        for key in keys[:-1]:
            if key not in target_config or not isinstance(target_config[key], dict):
                target_config[key] = {}
            target_config = target_config[key]

        leaf_key = keys[-1]

        try:
            if leaf_key in self.BOOL_KEYS:
                target_config[leaf_key] = value.lower() in ("true", "1", "yes", "on")
            elif leaf_key in self.INT_KEYS:
                target_config[leaf_key] = int(value)
            elif leaf_key in self.FLOAT_KEYS:
                target_config[leaf_key] = float(value)
            elif leaf_key in self.INT_LIST_KEYS:
                target_config[leaf_key] = [int(v) for v in value.split(",") if v.strip()]
            else:
                target_config[leaf_key] = value
        except ValueError:
            logger.warning(f"Ignoring invalid value for {key_path}: {value!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieves a configuration value using a dot-separated key.

        Args:
            key (str): The dot-separated key (e.g., "cache.dir").
            default (Any): The default value to return if the key is not found.

        Returns:
            Any: The configuration value or the default.
        """
        keys = key.split('.')
        value = self.config
        try:
            for k in keys:
                value = value[k]
        except (KeyError, TypeError):
            return default
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        """Sets a configuration value in memory.

        Args:
            key (str): The dot-separated key (e.g., "retry.max_retries").
            value (Any): The value to set.
        """
        keys = key.split('.')
        target_config = self.config
        for k in keys[:-1]:
            target_config = target_config.setdefault(k, {})
        target_config[keys[-1]] = value

    def retry_overrides(self) -> Dict[str, Any]:
        """Returns the user's retry settings, to be merged over client defaults."""
        retry = self.get("retry", {})
        return dict(retry) if isinstance(retry, dict) else {}

    def _get_user_config(self) -> Dict[str, Any]:
        if not USER_CONFIG_PATH.exists():
            return {}
        try:
            with open(USER_CONFIG_PATH, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            return {}

    def save_user_config(self) -> None:
        """Saves the current configuration to the user config file.

        Only settings that differ from the defaults are written, merged into
        whatever the file already contains. TOML has no null, so unset
        values are skipped.

        Raises:
            IOError: If the configuration file cannot be written.
        """
        user_config = self._get_user_config()
        self._merge_configs(user_config, _diff_from_defaults(self.config, self.DEFAULT_CONFIG))

        try:
            USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
            with open(USER_CONFIG_PATH, "wb") as f:
                tomli_w.dump(user_config, f)
        except OSError as e:
            raise IOError(f"Failed to save configuration to {USER_CONFIG_PATH}: {e}") from e

    def __str__(self) -> str:
        return f"Config({self.config})"


def _diff_from_defaults(current: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    diff: Dict[str, Any] = {}
    for key, value in current.items():
        default = defaults.get(key)
        if isinstance(value, dict):
            nested = _diff_from_defaults(value, default if isinstance(default, dict) else {})
            if nested:
                diff[key] = nested
        elif value is not None and value != default:
            diff[key] = value
    return diff
