"""Drives one sync run between the local env file and the remote item."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from op_env_sync.backup import BackupManager, BackupRecord
from op_env_sync.config_loader import Config
from op_env_sync.conflict import (
    ActionType,
    ConflictPrompt,
    ConflictResolver,
    ConflictStrategy,
    ResolvedAction,
    SyncDirection,
    limit_direction,
)
from op_env_sync.diff_engine import DiffCategory, DiffEngine
from op_env_sync.env_file import EnvVarSet, apply_changes, is_valid_name, read_env_file
from op_env_sync.errors import RemoteError, RemoteNotFoundError
from op_env_sync.file_ops import atomic_write_text
from op_env_sync.logging_setup import get_logger
from op_env_sync.remote_store import FieldChange, RemoteRef, RemoteStore
from op_env_sync.state_store import ChecksumBaseline, ChecksumStateStore, checksum_map

logger = get_logger()


@dataclass
class SyncReport:
    """Outcome of one sync run."""

    ref: RemoteRef
    env_file: str
    strategy: ConflictStrategy
    direction: SyncDirection = SyncDirection.BOTH
    dry_run: bool = False
    actions: List[ResolvedAction] = field(default_factory=list)
    backup: Optional[BackupRecord] = None
    backup_count: int = 0
    backup_bytes: int = 0
    local_written: bool = False
    remote_written: bool = False
    state_written: bool = False
    error: Optional[str] = None

    def _count(self, action_type: ActionType) -> int:
        return sum(1 for a in self.actions if a.action == action_type)

    @property
    def pulled(self) -> int:
        """Variables written to the local file."""
        return self._count(ActionType.WRITE_LOCAL)

    @property
    def pushed(self) -> int:
        """Variables written to the remote item."""
        return self._count(ActionType.WRITE_REMOTE)

    @property
    def deleted_local(self) -> int:
        """Variables removed from the local file."""
        return self._count(ActionType.DELETE_LOCAL)

    @property
    def deleted_remote(self) -> int:
        """Variables removed from the remote item."""
        return self._count(ActionType.DELETE_REMOTE)

    @property
    def unchanged(self) -> int:
        """Variables already equal on both sides."""
        return sum(1 for a in self.actions if a.entry.category == DiffCategory.UNCHANGED)

    @property
    def conflicts(self) -> int:
        """Variables classified as conflicting."""
        return sum(1 for a in self.actions if a.is_conflict)

    @property
    def conflicts_resolved(self) -> int:
        """Conflicts that were resolved (not skipped)."""
        return sum(1 for a in self.actions if a.is_conflict and not a.skipped)

    @property
    def skipped(self) -> int:
        """Conflicts left alone on request."""
        return sum(1 for a in self.actions if a.skipped)

    @property
    def deferred(self) -> int:
        """Actions withheld because of the sync direction."""
        return sum(1 for a in self.actions if a.deferred)

    @property
    def changes(self) -> int:
        """Number of mutating actions in the plan."""
        return sum(1 for a in self.actions if a.action != ActionType.NOOP)

    @property
    def success(self) -> bool:
        """Check if every planned action was applied."""
        return self.error is None

    @property
    def exit_code(self) -> int:
        """Process exit status for this run."""
        return 0 if self.success else 1


class SyncOrchestrator:
    """Runs the load, fetch, diff, resolve, apply and persist pipeline.

    Ordering within a run: the baseline is loaded, the local file and the
    remote item are read concurrently, then the local file is backed up and
    rewritten, then the remote item receives one batched write, and only if
    all of that succeeded is the new baseline saved. In dry-run mode nothing
    after conflict resolution touches the disk or the remote store.
    """

    def __init__(
        self,
        config: Config,
        remote_store: RemoteStore,
        prompt: Optional[ConflictPrompt] = None,
        state_store: Optional[ChecksumStateStore] = None,
        backup_manager: Optional[BackupManager] = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Configuration for this run
            remote_store: Remote secret store
            prompt: Prompt used by the interactive strategy
            state_store: Baseline store (default: from config.state_file)
            backup_manager: Backup manager (default: from config.backup_directory)
        """
        self.config = config
        self.remote_store = remote_store
        self.resolver = ConflictResolver(config.strategy, prompt)
        self.state_store = state_store or ChecksumStateStore(config.state_file)
        self.backup_manager = backup_manager or BackupManager(config.backup_directory)
        # Remote snapshots for the current run only
        self._remote_cache: Dict[RemoteRef, EnvVarSet] = {}

    def run(self) -> SyncReport:
        """Execute one sync.

        Returns:
            SyncReport; ``report.success`` is False when the remote write failed

        Raises:
            SyncError: For every failure that happens before a mutation
                (parse errors, unreadable or corrupt state, remote read errors,
                unresolved conflicts) and for local write failures
        """
        ref = self.config.remote_ref
        direction = self.config.direction
        self._remote_cache = {}

        mode = f"strategy: {self.config.strategy.value}"
        if direction != SyncDirection.BOTH:
            mode += f", {direction.value} only"
        if self.config.dry_run:
            mode += ", dry run"
        logger.info(f"Syncing {self.config.env_file} with {ref} ({mode})")

        try:
            baseline = self._load_baseline(ref)
            local_text, local_vars, remote_vars = self._read_both_sides(ref)

            entries = DiffEngine(
                local_vars,
                remote_vars,
                baseline.checksums if baseline else None,
            ).compute()
            actions = limit_direction(self.resolver.resolve_all(entries), direction)

            report = SyncReport(
                ref=ref,
                env_file=self.config.env_file,
                strategy=self.config.strategy,
                direction=direction,
                dry_run=self.config.dry_run,
                actions=actions,
            )

            if self.config.dry_run:
                logger.info("DRY RUN MODE: no changes will be made")
                return report

            self._apply(ref, local_text, actions, report)

            if report.success:
                self._persist_baseline(ref, baseline, local_vars, actions, report)
            else:
                logger.warning("Sync incomplete; previous baseline left in place")

            logger.info(
                f"Sync completed: {report.pulled} pulled, {report.pushed} pushed, "
                f"{report.deleted_local} deleted locally, {report.deleted_remote} "
                f"deleted remotely, {report.conflicts_resolved} conflicts resolved"
            )
            return report
        finally:
            self._remote_cache.clear()

    def _load_baseline(self, ref: RemoteRef) -> Optional[ChecksumBaseline]:
        """Load the baseline, ignoring one recorded for another remote item."""
        baseline = self.state_store.load()
        if baseline is not None and not baseline.matches(ref):
            logger.warning(
                f"State file {self.state_store.state_path} was recorded for "
                f"{baseline.remote_ref}, not {ref}; treating this as a first sync"
            )
            return None
        return baseline

    def _read_both_sides(self, ref: RemoteRef) -> Tuple[str, EnvVarSet, EnvVarSet]:
        """Read the local file and fetch the remote item concurrently."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="op-env-sync") as executor:
            local_future = executor.submit(read_env_file, self.config.env_file)
            remote_future = executor.submit(self._fetch_remote, ref)

            local_text, local_vars = local_future.result()
            remote_vars = remote_future.result()

        return local_text, local_vars, remote_vars

    def _fetch_remote(self, ref: RemoteRef) -> EnvVarSet:
        """Fetch remote fields into the per-run cache."""
        if ref in self._remote_cache:
            return self._remote_cache[ref]

        fields = self.remote_store.fetch(ref)
        if fields is None:
            if not self.config.create_missing_item:
                raise RemoteNotFoundError(f"Item not found: {ref}")
            logger.warning(f"Item {ref} not found (will be created)")
            fields = {}

        remote_vars: EnvVarSet = {}
        for name, value in fields.items():
            if not is_valid_name(name):
                logger.warning(f"Ignoring remote field {ref.field(name)}: not a valid variable name")
                continue
            remote_vars[name] = value

        self._remote_cache[ref] = remote_vars
        return remote_vars

    def _apply(
        self,
        ref: RemoteRef,
        local_text: str,
        actions: List[ResolvedAction],
        report: SyncReport,
    ) -> None:
        """Apply local writes, then the batched remote write."""
        local_changes: Dict[str, Optional[str]] = {}
        remote_changes: List[FieldChange] = []

        for action in actions:
            if action.action == ActionType.WRITE_LOCAL:
                local_changes[action.name] = action.value
            elif action.action == ActionType.DELETE_LOCAL:
                local_changes[action.name] = None
            elif action.action == ActionType.WRITE_REMOTE:
                remote_changes.append(FieldChange(action.name, action.value))
            elif action.action == ActionType.DELETE_REMOTE:
                remote_changes.append(FieldChange(action.name))

        if local_changes:
            if self.config.backup_enabled:
                report.backup = self.backup_manager.snapshot(self.config.env_file)
                report.backup_count = len(self.backup_manager.list_backups())
                report.backup_bytes = self.backup_manager.total_size()
            atomic_write_text(self.config.env_file, apply_changes(local_text, local_changes))
            report.local_written = True
            logger.info(f"Local file updated: {len(local_changes)} variables changed")

        if remote_changes:
            try:
                self.remote_store.write_fields(ref, remote_changes)
            except RemoteError as e:
                logger.error(f"Remote write to {ref} failed: {e}")
                report.error = f"Remote write failed: {e}"
                return
            report.remote_written = True
            logger.info(f"Pushed {len(remote_changes)} field changes to {ref}")

    def _persist_baseline(
        self,
        ref: RemoteRef,
        baseline: Optional[ChecksumBaseline],
        local_vars: EnvVarSet,
        actions: List[ResolvedAction],
        report: SyncReport,
    ) -> None:
        """Record the values both sides now agree on."""
        final_local = dict(local_vars)
        final_remote = dict(self._remote_cache[ref])

        for action in actions:
            if action.action == ActionType.WRITE_LOCAL:
                final_local[action.name] = action.value
            elif action.action == ActionType.DELETE_LOCAL:
                final_local.pop(action.name, None)
            elif action.action == ActionType.WRITE_REMOTE:
                final_remote[action.name] = action.value
            elif action.action == ActionType.DELETE_REMOTE:
                final_remote.pop(action.name, None)

        agreed = {
            name: value for name, value in final_local.items() if final_remote.get(name) == value
        }
        checksums = checksum_map(agreed)

        # Skipped and deferred names keep their old baseline so the next run
        # still sees the pending change on the same side
        for action in actions:
            entry = action.entry
            if (action.skipped or action.deferred) and entry.name not in agreed:
                if entry.baseline_checksum is not None:
                    checksums[entry.name] = entry.baseline_checksum

        if baseline is not None and baseline.checksums == checksums:
            logger.info("Baseline unchanged; state file left as is")
            return

        self.state_store.save(
            ChecksumBaseline(
                vault=ref.vault,
                item=ref.item,
                section=ref.section,
                checksums=checksums,
            )
        )
        report.state_written = True
