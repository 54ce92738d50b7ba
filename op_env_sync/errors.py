"""Exception hierarchy for the sync engine."""

from typing import Optional


class SyncError(Exception):
    """Base class for every error that aborts a sync."""

    pass


class EnvParseError(SyncError):
    """Raised when the local env file cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        """Initialize parse error.

        Args:
            message: Description of the problem
            line_number: 1-based line number of the offending line
        """
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class MalformedKeyError(EnvParseError):
    """Raised when a line does not start with a valid variable name."""

    pass


class UnterminatedQuoteError(EnvParseError):
    """Raised when a quoted value is not closed on its line."""

    pass


class RemoteError(SyncError):
    """Base class for remote secret store failures."""

    pass


class RemoteAuthError(RemoteError):
    """Raised when the remote store rejects our credentials."""

    pass


class RemoteNotFoundError(RemoteError):
    """Raised when the vault (or a required item) does not exist."""

    pass


class RemoteRateLimitedError(RemoteError):
    """Raised when the remote store keeps throttling us."""

    pass


class RemoteTimeoutError(RemoteError):
    """Raised when a remote call does not complete in time."""

    pass


class RemoteUnknownError(RemoteError):
    """Raised for remote failures that fit no other category."""

    pass


class ConflictUnresolvedError(SyncError):
    """Raised when a conflict needs a human but none is attached."""

    pass


class StateCorruptError(SyncError):
    """Raised when the state file exists but cannot be trusted."""

    pass


class FileOpsError(SyncError):
    """Raised when a local file operation fails."""

    pass
