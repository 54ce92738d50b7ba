"""Human-readable summaries of a sync run and its dry-run plan."""

from typing import Dict, List

from op_env_sync.conflict import ActionType, ResolvedAction
from op_env_sync.orchestrator import SyncReport


class SummaryFormatter:
    """Formats sync reports for the terminal.

    Only variable names are ever printed, never values.
    """

    ACTION_SYMBOLS = {
        ActionType.WRITE_LOCAL: "<-",
        ActionType.WRITE_REMOTE: "->",
        ActionType.DELETE_LOCAL: "[X]",
        ActionType.DELETE_REMOTE: "[X]",
    }

    ACTION_DESCRIPTIONS = {
        ActionType.WRITE_LOCAL: "Pull REMOTE -> LOCAL",
        ActionType.WRITE_REMOTE: "Push LOCAL -> REMOTE",
        ActionType.DELETE_LOCAL: "Delete from LOCAL",
        ActionType.DELETE_REMOTE: "Delete from REMOTE",
    }

    def __init__(self, local_name: str = "LOCAL", remote_name: str = "REMOTE"):
        """Initialize formatter.

        Args:
            local_name: Display name for the local file
            remote_name: Display name for the remote item
        """
        self.local_name = local_name
        self.remote_name = remote_name

    def format_report(self, report: SyncReport) -> str:
        """Format a report, choosing the dry-run layout when appropriate."""
        if report.dry_run:
            return self.format_dry_run_output(report)
        return self.format_summary(report)

    def format_dry_run_output(self, report: SyncReport) -> str:
        """Format the plan of a dry run.

        Args:
            report: Report of a run made with dry_run enabled

        Returns:
            Formatted output string
        """
        output = []
        output.append("=" * 80)
        output.append("DRY RUN MODE - NO CHANGES WILL BE MADE")
        output.append("=" * 80)
        output.append("")

        planned = [a for a in report.actions if a.action != ActionType.NOOP]
        if not planned:
            output.append("[OK] No synchronization needed - everything is already in sync!")
            output.extend(self._skipped_lines(report))
            output.extend(self._deferred_lines(report))
            output.append("")
            output.append("=" * 80)
            return "\n".join(output)

        output.append(f"The following {len(planned)} operations would be performed:\n")

        grouped = self._group_by_action(planned)
        output.append("Summary by Action:")
        output.append("-" * 80)
        for action, actions in grouped.items():
            symbol = self.ACTION_SYMBOLS.get(action, "?")
            output.append(f"  {symbol} {self.ACTION_DESCRIPTIONS[action]}: {len(actions)} variables")
        if report.conflicts:
            output.append(f"  [!] Conflicts: {report.conflicts} ({report.strategy.value})")
        output.append("")

        output.append("Detailed Changes:")
        output.append("-" * 80)
        for action, actions in grouped.items():
            output.append(f"\n{self.ACTION_DESCRIPTIONS[action]}:")
            output.append("")
            for resolved in actions:
                output.append(self._format_action(resolved))
        output.extend(self._skipped_lines(report))
        output.extend(self._deferred_lines(report))

        output.append("")
        output.append("=" * 80)
        output.append("END DRY RUN - To perform these changes, rerun without --dry-run")
        output.append("=" * 80)

        return "\n".join(output)

    def format_summary(self, report: SyncReport) -> str:
        """Format the summary block printed after a real run."""
        output = []
        output.append("=" * 50)
        output.append("Sync Summary")
        output.append("=" * 50)
        output.append(f"Local file: {report.env_file}")
        output.append(f"Remote item: {report.ref}")
        output.append(f"Pulled to local: {report.pulled}")
        output.append(f"Pushed to remote: {report.pushed}")
        output.append(f"Deleted locally: {report.deleted_local}")
        output.append(f"Deleted remotely: {report.deleted_remote}")
        output.append(f"Unchanged: {report.unchanged}")
        output.append(
            f"Conflicts: {report.conflicts} "
            f"(resolved: {report.conflicts_resolved}, skipped: {report.skipped})"
        )
        if report.backup is not None:
            output.append(f"Backup: {report.backup.backup_path}")
            output.append(
                f"Backups kept: {report.backup_count} "
                f"({report.backup_bytes / (1024 * 1024):.2f} MB)"
            )
        if report.deferred:
            output.append(f"Deferred ({report.direction.value} only): {report.deferred}")
        if report.error:
            output.append(f"Error: {report.error}")
        elif report.changes == 0:
            output.append("[OK] Already in sync")
        output.append("=" * 50)
        return "\n".join(output)

    def _group_by_action(
        self, actions: List[ResolvedAction]
    ) -> Dict[ActionType, List[ResolvedAction]]:
        """Group actions by type, in a stable display order."""
        grouped: Dict[ActionType, List[ResolvedAction]] = {}
        for action_type in self.ACTION_DESCRIPTIONS:
            matching = [a for a in actions if a.action == action_type]
            if matching:
                grouped[action_type] = matching
        return grouped

    def _format_action(self, resolved: ResolvedAction) -> str:
        """Format one planned action as a one-line diagram."""
        symbol = self.ACTION_SYMBOLS.get(resolved.action, "?")
        name = resolved.name
        suffix = " (conflict)" if resolved.is_conflict else ""

        if resolved.action == ActionType.WRITE_LOCAL:
            return f"  [{self.local_name}] {symbol} {name} [{self.remote_name}]{suffix}"
        elif resolved.action == ActionType.WRITE_REMOTE:
            return f"  [{self.local_name}] {name} {symbol} [{self.remote_name}]{suffix}"
        elif resolved.action == ActionType.DELETE_LOCAL:
            return f"  [{self.local_name}] {name} {symbol} (delete){suffix}"
        elif resolved.action == ActionType.DELETE_REMOTE:
            return f"  [{self.remote_name}] {name} {symbol} (delete){suffix}"
        else:
            return f"  {name} ({resolved.action.value})"

    def _skipped_lines(self, report: SyncReport) -> List[str]:
        """List conflicts that were skipped at the prompt."""
        skipped = [a.name for a in report.actions if a.skipped]
        if not skipped:
            return []
        return ["", f"Skipped conflicts (left as is): {', '.join(skipped)}"]

    def _deferred_lines(self, report: SyncReport) -> List[str]:
        """List changes held back by a one-way run."""
        deferred = [a.name for a in report.actions if a.deferred]
        if not deferred:
            return []
        return ["", f"Deferred ({report.direction.value} only): {', '.join(deferred)}"]
