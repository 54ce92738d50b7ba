"""Conflict resolution and diff-to-action mapping."""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, TextIO

from op_env_sync.diff_engine import DiffCategory, DiffEntry
from op_env_sync.errors import ConflictUnresolvedError
from op_env_sync.logging_setup import get_logger

logger = get_logger()

PROMPT_PREVIEW_LENGTH = 60


class ConflictStrategy(Enum):
    """Conflict resolution strategies."""

    OURS = "ours"
    THEIRS = "theirs"
    NEWEST = "newest"
    INTERACTIVE = "interactive"


class ActionType(Enum):
    """What to do with one variable."""

    WRITE_LOCAL = "WRITE_LOCAL"
    WRITE_REMOTE = "WRITE_REMOTE"
    DELETE_LOCAL = "DELETE_LOCAL"
    DELETE_REMOTE = "DELETE_REMOTE"
    NOOP = "NOOP"


class SyncDirection(Enum):
    """Which side(s) a run may change."""

    BOTH = "both"
    PULL = "pull"
    PUSH = "push"


LOCAL_ACTIONS = (ActionType.WRITE_LOCAL, ActionType.DELETE_LOCAL)
REMOTE_ACTIONS = (ActionType.WRITE_REMOTE, ActionType.DELETE_REMOTE)


class PromptChoice(Enum):
    """Answers to an interactive conflict prompt."""

    KEEP_LOCAL = "keep-local"
    KEEP_REMOTE = "keep-remote"
    SKIP = "skip"


@dataclass
class ResolvedAction:
    """A diff entry mapped to exactly one action."""

    entry: DiffEntry
    action: ActionType
    value: Optional[str] = None
    skipped: bool = False
    deferred: bool = False

    @property
    def name(self) -> str:
        """Variable name."""
        return self.entry.name

    @property
    def is_conflict(self) -> bool:
        """Check if this action came out of conflict resolution."""
        return self.entry.category == DiffCategory.CONFLICT


class ConflictPrompt(ABC):
    """Asks a human how to resolve one conflict."""

    @abstractmethod
    def ask(self, entry: DiffEntry) -> PromptChoice:
        """Ask for a decision on a conflicting variable.

        Raises:
            ConflictUnresolvedError: If no answer can be obtained
        """


class ConsolePrompt(ConflictPrompt):
    """Prompts on a text stream, by default the process's terminal."""

    CHOICES = {
        "l": PromptChoice.KEEP_LOCAL,
        "local": PromptChoice.KEEP_LOCAL,
        "r": PromptChoice.KEEP_REMOTE,
        "remote": PromptChoice.KEEP_REMOTE,
        "s": PromptChoice.SKIP,
        "skip": PromptChoice.SKIP,
    }

    def __init__(
        self,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        require_tty: bool = True,
    ):
        """Initialize console prompt.

        Args:
            input_stream: Where answers are read from (default: stdin)
            output_stream: Where questions are written to (default: stderr)
            require_tty: Refuse to prompt unless ``input_stream`` is a terminal
        """
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.output_stream = output_stream if output_stream is not None else sys.stderr
        self.require_tty = require_tty

    def is_interactive(self) -> bool:
        """Check if a human can answer on the input stream."""
        if not self.require_tty:
            return True
        isatty = getattr(self.input_stream, "isatty", None)
        return bool(isatty and isatty())

    def ask(self, entry: DiffEntry) -> PromptChoice:
        if not self.is_interactive():
            raise ConflictUnresolvedError(
                f"Conflict on {entry.name} needs an interactive terminal; "
                f"rerun with --strategy=ours or --strategy=theirs"
            )

        out = self.output_stream
        out.write(f"\nConflict detected: {entry.name}\n\n")
        out.write(f"  Local:  {_preview(entry.local_value)}\n")
        out.write(f"  Remote: {_preview(entry.remote_value)}\n\n")

        while True:
            out.write("Choose [l]ocal, [r]emote, [s]kip: ")
            out.flush()
            answer = self.input_stream.readline()
            if not answer:
                raise ConflictUnresolvedError(
                    f"Input closed before conflict on {entry.name} was resolved"
                )
            choice = self.CHOICES.get(answer.strip().lower())
            if choice is not None:
                return choice
            out.write("Invalid choice. Please enter l, r, or s.\n")


class ConflictResolver:
    """Maps diff entries to actions, applying a strategy to conflicts."""

    def __init__(self, strategy: ConflictStrategy, prompt: Optional[ConflictPrompt] = None):
        """Initialize conflict resolver.

        Args:
            strategy: Strategy applied to CONFLICT entries
            prompt: Source of answers for the interactive strategy
        """
        self.strategy = strategy
        self.prompt = prompt

    def resolve_all(self, entries: List[DiffEntry]) -> List[ResolvedAction]:
        """Resolve every entry, in order.

        Raises:
            ConflictUnresolvedError: If an interactive conflict cannot be answered
        """
        return [self.resolve(entry) for entry in entries]

    def resolve(self, entry: DiffEntry) -> ResolvedAction:
        """Map one diff entry to exactly one action."""
        category = entry.category

        if category == DiffCategory.UNCHANGED:
            return ResolvedAction(entry, ActionType.NOOP)
        if category in (DiffCategory.PULL_ADD, DiffCategory.PULL_UPDATE):
            return ResolvedAction(entry, ActionType.WRITE_LOCAL, entry.remote_value)
        if category in (DiffCategory.PUSH_ADD, DiffCategory.PUSH_UPDATE):
            return ResolvedAction(entry, ActionType.WRITE_REMOTE, entry.local_value)
        if category == DiffCategory.PULL_DELETE:
            return ResolvedAction(entry, ActionType.DELETE_LOCAL)
        if category == DiffCategory.PUSH_DELETE:
            return ResolvedAction(entry, ActionType.DELETE_REMOTE)
        if category == DiffCategory.CONFLICT:
            return self._resolve_conflict(entry)

        raise ValueError(f"Unhandled diff category: {category}")

    def _resolve_conflict(self, entry: DiffEntry) -> ResolvedAction:
        """Apply the configured strategy to a CONFLICT entry."""
        if entry.local_value == entry.remote_value:
            return ResolvedAction(entry, ActionType.NOOP)

        if self.strategy == ConflictStrategy.OURS:
            action = _keep_local(entry)
        elif self.strategy == ConflictStrategy.THEIRS:
            action = _keep_remote(entry)
        elif self.strategy == ConflictStrategy.NEWEST:
            # No reliable modification time on either side yet; the remote
            # item keeps version history, so it is treated as the newer one.
            action = _keep_remote(entry)
        elif self.strategy == ConflictStrategy.INTERACTIVE:
            action = self._ask(entry)
        else:
            raise ValueError(f"Unhandled conflict strategy: {self.strategy}")

        logger.info(
            f"Conflict on {entry.name} resolved with {self.strategy.value}: "
            f"{action.action.value}{' (skipped)' if action.skipped else ''}"
        )
        return action

    def _ask(self, entry: DiffEntry) -> ResolvedAction:
        """Resolve a conflict through the interactive prompt."""
        if self.prompt is None:
            raise ConflictUnresolvedError(
                f"Conflict on {entry.name} needs interactive input but no input "
                f"stream is attached"
            )

        choice = self.prompt.ask(entry)
        if choice == PromptChoice.KEEP_LOCAL:
            return _keep_local(entry)
        if choice == PromptChoice.KEEP_REMOTE:
            return _keep_remote(entry)
        return ResolvedAction(entry, ActionType.NOOP, skipped=True)


def limit_direction(
    actions: List[ResolvedAction], direction: SyncDirection
) -> List[ResolvedAction]:
    """Turn actions the direction does not allow into deferred no-ops.

    A pull-only run never touches the remote item and a push-only run never
    touches the local file. Deferred names keep their previous baseline, so
    a later run in the other direction still sees them as changed.

    Args:
        actions: Resolved actions for every variable
        direction: Side(s) this run may change

    Returns:
        New list with withheld actions replaced
    """
    if direction == SyncDirection.BOTH:
        return list(actions)

    withheld = REMOTE_ACTIONS if direction == SyncDirection.PULL else LOCAL_ACTIONS
    limited = []
    for resolved in actions:
        if resolved.action in withheld:
            logger.info(
                f"Deferring {resolved.action.value} for {resolved.name} "
                f"({direction.value}-only run)"
            )
            resolved = ResolvedAction(resolved.entry, ActionType.NOOP, deferred=True)
        limited.append(resolved)
    return limited


def _keep_local(entry: DiffEntry) -> ResolvedAction:
    """Make the remote side match local (a local deletion wins as well)."""
    if entry.local_value is None:
        return ResolvedAction(entry, ActionType.DELETE_REMOTE)
    return ResolvedAction(entry, ActionType.WRITE_REMOTE, entry.local_value)


def _keep_remote(entry: DiffEntry) -> ResolvedAction:
    """Make the local side match remote (a remote deletion wins as well)."""
    if entry.remote_value is None:
        return ResolvedAction(entry, ActionType.DELETE_LOCAL)
    return ResolvedAction(entry, ActionType.WRITE_LOCAL, entry.remote_value)


def _preview(value: Optional[str]) -> str:
    """Shorten a value for display in the prompt."""
    if value is None:
        return "(deleted)"
    if len(value) > PROMPT_PREVIEW_LENGTH:
        return value[:PROMPT_PREVIEW_LENGTH] + "..."
    return value
