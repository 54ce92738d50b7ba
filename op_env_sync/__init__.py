"""Bidirectional sync between a local .env file and a 1Password item."""

from op_env_sync.config_loader import Config, ConfigError, load_config
from op_env_sync.conflict import ConflictStrategy, SyncDirection
from op_env_sync.errors import SyncError
from op_env_sync.logging_setup import get_logger, setup_logging
from op_env_sync.orchestrator import SyncOrchestrator, SyncReport

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ConfigError",
    "ConflictStrategy",
    "SyncError",
    "SyncOrchestrator",
    "SyncReport",
    "SyncDirection",
    "load_config",
    "setup_logging",
    "get_logger",
]
