"""Persisted baseline of the last successful sync."""

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from op_env_sync.errors import StateCorruptError
from op_env_sync.file_ops import atomic_write_text, delete_file, read_text
from op_env_sync.logging_setup import get_logger
from op_env_sync.remote_store import RemoteRef

logger = get_logger()

SCHEMA_VERSION = "1.0"
_CHECKSUM_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def checksum(value: str) -> str:
    """SHA-256 of the UTF-8 encoded value, as lowercase hex."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def checksum_map(env_vars: Mapping[str, str]) -> Dict[str, str]:
    """Checksum every value of a name -> value mapping."""
    return {name: checksum(value) for name, value in env_vars.items()}


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC timestamp with second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class ChecksumBaseline:
    """Checksums of the values both sides agreed on at the last sync."""

    vault: str
    item: str
    section: Optional[str] = None
    checksums: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_timestamp)
    version: str = SCHEMA_VERSION

    @property
    def remote_ref(self) -> RemoteRef:
        """Reference to the remote item this baseline was recorded for."""
        return RemoteRef(vault=self.vault, item=self.item, section=self.section)

    def matches(self, ref: RemoteRef) -> bool:
        """Check if this baseline was recorded for ``ref``."""
        return self.remote_ref == ref

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk JSON structure."""
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "vault": self.vault,
            "item": self.item,
            "section": self.section,
            "checksums": dict(sorted(self.checksums.items())),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ChecksumBaseline":
        """Build a baseline from the on-disk JSON structure.

        Raises:
            ValueError: If the structure is not a valid baseline
        """
        if not isinstance(data, dict):
            raise ValueError("top-level value is not an object")

        for key in ("version", "timestamp", "vault", "item"):
            if not isinstance(data.get(key), str):
                raise ValueError(f"'{key}' is missing or not a string")

        if data["version"] != SCHEMA_VERSION:
            raise ValueError(f"unsupported version {data['version']!r}")

        section = data.get("section")
        if section is not None and not isinstance(section, str):
            raise ValueError("'section' must be a string or null")

        checksums = data.get("checksums")
        if not isinstance(checksums, dict):
            raise ValueError("'checksums' is missing or not an object")
        for name, digest in checksums.items():
            if not isinstance(digest, str) or not _CHECKSUM_PATTERN.match(digest):
                raise ValueError(f"checksum for {name!r} is not a SHA-256 hex digest")

        return cls(
            vault=data["vault"],
            item=data["item"],
            section=section or None,
            checksums=dict(checksums),
            timestamp=data["timestamp"],
            version=data["version"],
        )


class ChecksumStateStore:
    """Loads and atomically saves the sync baseline as a JSON file."""

    def __init__(self, state_path: str):
        """Initialize state store.

        Args:
            state_path: Path to the JSON state file
        """
        self.state_path = state_path

    def load(self) -> Optional[ChecksumBaseline]:
        """Load the baseline from the last successful sync.

        Returns:
            ChecksumBaseline, or None if no sync has happened yet

        Raises:
            StateCorruptError: If the file exists but cannot be trusted
        """
        text = read_text(self.state_path)
        if text is None:
            logger.info("No previous sync found (first sync)")
            return None

        try:
            baseline = ChecksumBaseline.from_dict(json.loads(text))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            raise StateCorruptError(
                f"State file {self.state_path} is corrupt ({e}). Remove it or run "
                f"with --reset-state to start over from a fresh first sync."
            ) from e

        logger.info(
            f"Found previous sync: {baseline.timestamp} "
            f"({len(baseline.checksums)} variables)"
        )
        return baseline

    def save(self, baseline: ChecksumBaseline) -> None:
        """Replace the state file with ``baseline`` atomically (mode 0600).

        Raises:
            FileOpsError: If the file cannot be written
        """
        text = json.dumps(baseline.to_dict(), indent=2, sort_keys=True) + "\n"
        atomic_write_text(self.state_path, text)
        logger.info(f"State saved: {self.state_path}")

    def clear(self) -> bool:
        """Remove the state file.

        Returns:
            True if a state file was removed
        """
        removed = delete_file(self.state_path)
        if removed:
            logger.info(f"Cleared sync state: {self.state_path}")
        return removed

    def exists(self) -> bool:
        """Check if a state file is present."""
        return Path(self.state_path).exists()
