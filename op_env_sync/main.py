"""Main entry point for op-env-sync."""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from op_env_sync.config_loader import (
    Config,
    ConfigError,
    config_path_from_env,
    merge_config_dicts,
    read_config_file,
)
from op_env_sync.conflict import (
    ConflictPrompt,
    ConflictStrategy,
    ConsolePrompt,
    SyncDirection,
)
from op_env_sync.errors import SyncError
from op_env_sync.logging_setup import get_logger, setup_logging
from op_env_sync.op_cli import OnePasswordCLIStore
from op_env_sync.orchestrator import SyncOrchestrator, SyncReport
from op_env_sync.remote_store import RemoteStore
from op_env_sync.state_store import ChecksumStateStore
from op_env_sync.summary_formatter import SummaryFormatter

logger = get_logger()

DEFAULT_CONFIG_FILE = "op-env-sync.yaml"


class SyncRunner:
    """Wires configuration, the remote store and the prompt into one run."""

    def __init__(
        self,
        config: Config,
        remote_store: Optional[RemoteStore] = None,
        prompt: Optional[ConflictPrompt] = None,
    ):
        """Initialize sync runner.

        Args:
            config: Configuration for this run
            remote_store: Remote store (default: the 1Password CLI)
            prompt: Conflict prompt (default: the terminal, interactive strategy only)
        """
        self.config = config
        self.remote_store = remote_store or OnePasswordCLIStore.from_config(config)
        if prompt is None and config.strategy == ConflictStrategy.INTERACTIVE:
            prompt = ConsolePrompt()
        self.prompt = prompt
        self.formatter = SummaryFormatter()

    def run(self) -> SyncReport:
        """Run one sync and print its summary.

        Raises:
            SyncError: If the sync aborts before applying its changes
        """
        orchestrator = SyncOrchestrator(self.config, self.remote_store, prompt=self.prompt)
        report = orchestrator.run()
        print("\n" + self.formatter.format_report(report) + "\n")
        return report


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="op-env-sync",
        description="Bidirectional sync between a local .env file and a 1Password item",
    )
    parser.add_argument(
        "--vault",
        help="1Password vault name (required unless set in the config file)",
    )
    parser.add_argument(
        "--env-file",
        help="Path to the local .env file (default: .env)",
    )
    parser.add_argument(
        "--item",
        help="1Password item title (default: env-secrets)",
    )
    parser.add_argument(
        "--section",
        help="Only sync fields in this item section",
    )
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in ConflictStrategy],
        help="Conflict resolution strategy (default: interactive)",
    )
    parser.add_argument(
        "--direction",
        choices=[d.value for d in SyncDirection],
        help="Only pull remote changes, only push local changes, or both (default: both)",
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not back up the local file before modifying it",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without modifying anything",
    )
    parser.add_argument(
        "--config",
        help=f"Path to a YAML config file (default: {DEFAULT_CONFIG_FILE} if present)",
    )
    parser.add_argument(
        "--use-env",
        action="store_true",
        help="Load the config file named by the OP_ENV_SYNC_CONFIG environment variable",
    )
    parser.add_argument(
        "--state-file",
        help="Path to the sync state file (default: next to the .env file)",
    )
    parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Discard the previous sync state and sync as if for the first time",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file",
    )
    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Turn parsed arguments into config overrides (unset flags are None)."""
    return {
        "vault": args.vault,
        "item": args.item,
        "section": args.section,
        "env_file": args.env_file,
        "strategy": args.strategy,
        "direction": args.direction,
        "state_file": args.state_file,
        "dry_run": True if args.dry_run else None,
        "backup": {"enabled": False if args.no_backup else None},
        "logging": {"level": args.log_level, "file_path": args.log_file},
    }


def build_config(args: argparse.Namespace) -> Config:
    """Build the run configuration from the config file and CLI flags.

    Raises:
        ConfigError: If the config file is missing or the result is invalid
    """
    base: Dict[str, Any] = {}
    if args.use_env:
        logger.info("Loading config from environment variable")
        base = read_config_file(config_path_from_env())
    elif args.config:
        base = read_config_file(args.config)
    elif Path(DEFAULT_CONFIG_FILE).exists():
        base = read_config_file(DEFAULT_CONFIG_FILE)

    return Config(merge_config_dicts(base, cli_overrides(args)))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        setup_logging(log_level=args.log_level or "INFO")
        logger.error(f"Config error: {e}")
        return 1

    setup_logging(
        config.log_file_path,
        config.log_level,
        max_bytes=config.log_max_size_mb * 1024 * 1024,
        backup_count=config.log_backup_count,
        rotation_enabled=config.log_rotation_enabled,
    )

    try:
        if args.reset_state:
            if config.dry_run:
                logger.info("--reset-state ignored in dry run mode")
            else:
                state_store = ChecksumStateStore(config.state_file)
                if state_store.exists():
                    state_store.clear()
                else:
                    logger.info("No sync state to reset")

        report = SyncRunner(config).run()
        return report.exit_code
    except SyncError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Sync interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
