"""Timestamped backups of the local env file."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from op_env_sync.file_ops import copy_file
from op_env_sync.logging_setup import get_logger

logger = get_logger()

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class BackupRecord:
    """A copy of the local file taken before it was modified."""

    backup_path: str
    source_path: str
    created_at: datetime


class BackupManager:
    """Snapshots the env file before a sync changes it.

    Backups are never pruned automatically; they exist for manual recovery.
    """

    def __init__(self, backup_dir: str):
        """Initialize backup manager.

        Args:
            backup_dir: Directory that receives the backup copies
        """
        self.backup_dir = backup_dir

    def snapshot(self, path: str) -> Optional[BackupRecord]:
        """Copy ``path`` into the backup directory.

        The copy is named ``<file name>.<YYYYmmdd_HHMMSS>.bak``; a numeric
        suffix is added when a backup with that name already exists.

        Args:
            path: File to back up

        Returns:
            BackupRecord, or None if there is no file to back up

        Raises:
            FileOpsError: If the copy fails
        """
        source = Path(path)
        if not source.exists():
            logger.warning(f"No existing file to backup: {path}")
            return None

        created_at = datetime.now()
        destination = self._unique_path(source.name, created_at)
        copy_file(str(source), str(destination))

        logger.info(f"Backup created: {destination}")
        return BackupRecord(
            backup_path=str(destination),
            source_path=str(source),
            created_at=created_at,
        )

    def list_backups(self) -> List[Path]:
        """List backup files, oldest name first."""
        backup_path = Path(self.backup_dir)
        if not backup_path.exists():
            return []
        return sorted(p for p in backup_path.glob("*.bak") if p.is_file())

    def total_size(self) -> int:
        """Get total size of all backups in bytes."""
        total = 0
        for backup in self.list_backups():
            try:
                total += backup.stat().st_size
            except OSError as e:
                logger.warning(f"Error reading backup size for {backup}: {e}")
        return total

    def _unique_path(self, name: str, created_at: datetime) -> Path:
        """Pick a backup file name that is not taken yet."""
        directory = Path(self.backup_dir)
        stem = f"{name}.{created_at.strftime(TIMESTAMP_FORMAT)}"
        candidate = directory / f"{stem}.bak"
        counter = 1
        while candidate.exists():
            candidate = directory / f"{stem}.{counter}.bak"
            counter += 1
        return candidate
