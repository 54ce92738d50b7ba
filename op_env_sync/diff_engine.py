"""Three-way diff of local, remote and baseline variables."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

from op_env_sync.logging_setup import get_logger
from op_env_sync.state_store import checksum

logger = get_logger()


class DiffCategory(Enum):
    """Change categories for a single variable."""

    UNCHANGED = "unchanged"
    PULL_ADD = "pull_add"
    PULL_UPDATE = "pull_update"
    PUSH_ADD = "push_add"
    PUSH_UPDATE = "push_update"
    CONFLICT = "conflict"
    PULL_DELETE = "pull_delete"
    PUSH_DELETE = "push_delete"


@dataclass
class DiffEntry:
    """Classification of one variable name."""

    name: str
    category: DiffCategory
    local_value: Optional[str] = None
    remote_value: Optional[str] = None
    baseline_checksum: Optional[str] = None

    @property
    def in_local(self) -> bool:
        """Check if the variable exists locally."""
        return self.local_value is not None

    @property
    def in_remote(self) -> bool:
        """Check if the variable exists remotely."""
        return self.remote_value is not None


class DiffEngine:
    """Classifies variables by comparing both sides against the baseline.

    Local and remote values are never compared to each other to decide the
    direction of a change; only their checksums against the baseline are.
    The one direct comparison is equality, which makes a variable UNCHANGED
    whatever the baseline says.
    """

    def __init__(
        self,
        local: Mapping[str, str],
        remote: Mapping[str, str],
        baseline: Optional[Mapping[str, str]] = None,
    ):
        """Initialize diff engine.

        Args:
            local: Current local variables
            remote: Current remote fields
            baseline: name -> checksum from the last sync (None on first sync)
        """
        self.local = local
        self.remote = remote
        self.baseline = baseline or {}

    def compute(self) -> List[DiffEntry]:
        """Classify every name seen on any side.

        Returns:
            DiffEntry list sorted by name. Names that are only in the baseline
            (deleted on both sides) produce no entry.
        """
        names = set(self.local) | set(self.remote) | set(self.baseline)
        entries = []

        for name in sorted(names):
            entry = self._classify(name)
            if entry is None:
                logger.debug(f"{name}: deleted on both sides, dropping from baseline")
                continue
            entries.append(entry)

        counts: Dict[DiffCategory, int] = {}
        for entry in entries:
            counts[entry.category] = counts.get(entry.category, 0) + 1
        summary = ", ".join(f"{category.value}={count}" for category, count in counts.items())
        logger.info(f"Classified {len(entries)} variables ({summary or 'none'})")
        return entries

    def _classify(self, name: str) -> Optional[DiffEntry]:
        """Classify a single name."""
        local_value = self.local.get(name)
        remote_value = self.remote.get(name)
        base = self.baseline.get(name)

        def entry(category: DiffCategory) -> DiffEntry:
            return DiffEntry(
                name=name,
                category=category,
                local_value=local_value,
                remote_value=remote_value,
                baseline_checksum=base,
            )

        # Rule 1: gone from both sides
        if local_value is None and remote_value is None:
            return None

        # Rule 2: both sides agree
        if local_value is not None and remote_value is not None and local_value == remote_value:
            return entry(DiffCategory.UNCHANGED)

        # Rule 3: local only
        if remote_value is None:
            if base is None:
                return entry(DiffCategory.PUSH_ADD)
            if checksum(local_value) == base:
                return entry(DiffCategory.PULL_DELETE)
            return entry(DiffCategory.CONFLICT)

        # Rule 4: remote only
        if local_value is None:
            if base is None:
                return entry(DiffCategory.PULL_ADD)
            if checksum(remote_value) == base:
                return entry(DiffCategory.PUSH_DELETE)
            return entry(DiffCategory.CONFLICT)

        # Rule 5: both present, values differ
        if base is not None:
            if checksum(remote_value) == base:
                return entry(DiffCategory.PUSH_UPDATE)
            if checksum(local_value) == base:
                return entry(DiffCategory.PULL_UPDATE)
        return entry(DiffCategory.CONFLICT)
