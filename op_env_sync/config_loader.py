"""Configuration loader for op-env-sync."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from op_env_sync.conflict import ConflictStrategy, SyncDirection
from op_env_sync.remote_store import RemoteRef

CONFIG_ENV_VAR = "OP_ENV_SYNC_CONFIG"
DEFAULT_ITEM = "env-secrets"
DEFAULT_ENV_FILE = ".env"
STATE_FILE_NAME = ".op-env-sync.state"
WORK_DIR_NAME = ".op-env-sync"


class ConfigError(Exception):
    """Raised when config validation fails."""

    pass


class Config:
    """Read-only configuration for one sync run.

    The wrapped dictionary is copied on the way in and on the way out, and
    there are no setters: merge overrides into a plain dict with
    ``merge_config_dicts`` and build a new Config from the result.
    """

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self._config = copy.deepcopy(config_dict)
        self._validate()

    def _validate(self) -> None:
        """Validate required configuration fields."""
        vault = self._config.get("vault")
        if not vault:
            raise ConfigError("Missing required config key: vault")
        if not isinstance(vault, str):
            raise ConfigError("Config key 'vault' must be a string")

        for key in ("item", "section", "env_file", "state_file"):
            value = self._config.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"Config key '{key}' must be a string")

        for key in ("backup", "remote", "logging"):
            value = self._config.get(key)
            if value is not None and not isinstance(value, dict):
                raise ConfigError(f"Config key '{key}' must be a mapping")

        if not self.item:
            raise ConfigError("Config key 'item' must not be empty")

        strategy = self._config.get("strategy", ConflictStrategy.INTERACTIVE.value)
        try:
            ConflictStrategy(strategy)
        except ValueError:
            valid = ", ".join(s.value for s in ConflictStrategy)
            raise ConfigError(
                f"Invalid strategy: {strategy} (valid strategies: {valid})"
            ) from None

        direction = self._config.get("direction") or SyncDirection.BOTH.value
        try:
            SyncDirection(direction)
        except ValueError:
            valid = ", ".join(d.value for d in SyncDirection)
            raise ConfigError(
                f"Invalid direction: {direction} (valid directions: {valid})"
            ) from None

        try:
            if self.max_retries < 0:
                raise ConfigError("remote.max_retries must not be negative")
            if self.remote_timeout <= 0:
                raise ConfigError("remote.timeout_seconds must be positive")
            if self.retry_delay < 0 or self.max_delay < 0:
                raise ConfigError("remote retry delays must not be negative")
            if self.backoff_factor < 1:
                raise ConfigError("remote.backoff_factor must be at least 1")
            if self.log_max_size_mb <= 0 or self.log_backup_count < 0:
                raise ConfigError("logging rotation settings must be positive")
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from None

        log_level = self.log_level
        if not isinstance(log_level, str) or log_level.upper() not in (
            "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
        ):
            raise ConfigError(f"Invalid log level: {log_level}")

    def _section_value(self, section: str, key: str, default: Any) -> Any:
        """Get ``section.key``, treating an explicit null like a missing key."""
        value = (self._config.get(section) or {}).get(key)
        return default if value is None else value

    @property
    def vault(self) -> str:
        """Get vault name."""
        return self._config["vault"]

    @property
    def item(self) -> str:
        """Get item name."""
        return self._config.get("item") or DEFAULT_ITEM

    @property
    def section(self) -> Optional[str]:
        """Get section name, or None for unsectioned fields."""
        return self._config.get("section") or None

    @property
    def remote_ref(self) -> RemoteRef:
        """Get the structured reference to the remote item."""
        return RemoteRef(vault=self.vault, item=self.item, section=self.section)

    @property
    def env_file(self) -> str:
        """Get local env file path."""
        return self._config.get("env_file") or DEFAULT_ENV_FILE

    @property
    def strategy(self) -> ConflictStrategy:
        """Get conflict resolution strategy."""
        return ConflictStrategy(
            self._config.get("strategy", ConflictStrategy.INTERACTIVE.value)
        )

    @property
    def direction(self) -> SyncDirection:
        """Get which side(s) a run may change."""
        return SyncDirection(self._config.get("direction") or SyncDirection.BOTH.value)

    @property
    def dry_run(self) -> bool:
        """Get dry run flag."""
        return bool(self._config.get("dry_run", False))

    @property
    def state_file(self) -> str:
        """Get state file path (defaults to the env file's directory)."""
        configured = self._config.get("state_file")
        if configured:
            return configured
        return str(Path(self.env_file).parent / STATE_FILE_NAME)

    @property
    def backup_enabled(self) -> bool:
        """Get backup enabled flag."""
        return bool(self._section_value("backup", "enabled", True))

    @property
    def backup_directory(self) -> str:
        """Get backup directory (defaults next to the env file)."""
        configured = self._section_value("backup", "directory", None)
        if configured:
            return configured
        return str(Path(self.env_file).parent / WORK_DIR_NAME / "backups")

    @property
    def op_binary(self) -> str:
        """Get 1Password CLI executable."""
        return self._section_value("remote", "op_binary", "op")

    @property
    def remote_timeout(self) -> float:
        """Get timeout in seconds for a single remote call."""
        return float(self._section_value("remote", "timeout_seconds", 30))

    @property
    def max_retries(self) -> int:
        """Get retry count for transient remote failures."""
        return int(self._section_value("remote", "max_retries", 3))

    @property
    def retry_delay(self) -> float:
        """Get initial retry delay in seconds."""
        return float(self._section_value("remote", "retry_delay", 1.0))

    @property
    def backoff_factor(self) -> float:
        """Get exponential backoff multiplier."""
        return float(self._section_value("remote", "backoff_factor", 2.0))

    @property
    def max_delay(self) -> float:
        """Get retry delay cap in seconds."""
        return float(self._section_value("remote", "max_delay", 30.0))

    @property
    def retry_jitter(self) -> bool:
        """Get retry jitter flag."""
        return bool(self._section_value("remote", "retry_jitter", True))

    @property
    def create_missing_item(self) -> bool:
        """Whether a missing remote item is created by the first push."""
        return bool(self._section_value("remote", "create_missing_item", True))

    @property
    def log_file_path(self) -> Optional[str]:
        """Get log file path, or None for console-only logging."""
        return self._section_value("logging", "file_path", None)

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self._section_value("logging", "level", "INFO")

    @property
    def log_rotation_enabled(self) -> bool:
        """Get log rotation enabled flag."""
        return bool(self._section_value("logging", "rotation_enabled", True))

    @property
    def log_max_size_mb(self) -> int:
        """Get max log file size in MB before rotation."""
        return int(self._section_value("logging", "max_size_mb", 10))

    @property
    def log_backup_count(self) -> int:
        """Get number of rotated log files to keep."""
        return int(self._section_value("logging", "backup_count", 5))

    def to_dict(self) -> Dict[str, Any]:
        """Return config as dictionary."""
        return copy.deepcopy(self._config)


def merge_config_dicts(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``overrides`` into a copy of ``base``.

    Args:
        base: Base configuration dictionary
        overrides: Values to apply; ``None`` values are skipped at every level

    Returns:
        Merged dictionary
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            section = merged.get(key)
            if not isinstance(section, dict):
                section = {}
            nested = merge_config_dicts(section, value)
            # An override section made only of unset flags adds nothing
            if nested or key in merged:
                merged[key] = nested
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Read a YAML config file into a dictionary without validating it.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Raw configuration dictionary

    Raises:
        ConfigError: If config file doesn't exist or is not a mapping
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return config_dict


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Config object

    Raises:
        ConfigError: If config file doesn't exist or is invalid
    """
    return Config(read_config_file(config_path))


def config_path_from_env(env_var: str = CONFIG_ENV_VAR) -> str:
    """Get the config file path named by an environment variable.

    Raises:
        ConfigError: If environment variable not set
    """
    config_path = os.getenv(env_var)
    if not config_path:
        raise ConfigError(f"Environment variable {env_var} not set")
    return config_path


def load_config_from_env(env_var: str = CONFIG_ENV_VAR) -> Config:
    """Load configuration from the file named by an environment variable.

    Args:
        env_var: Name of environment variable containing config path

    Returns:
        Config object

    Raises:
        ConfigError: If environment variable not set or config invalid
    """
    return load_config(config_path_from_env(env_var))
