"""Exceptions raised by git-repo-sync."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .sync.executor import ActionLog
    from .sync.plan import Action, Conflict


class RepoSyncError(Exception):
    """Base exception for all git-repo-sync errors."""


class ConfigError(RepoSyncError):
    """Raised when the configuration file is invalid."""


class RemoteConnectionError(RepoSyncError):
    """Raised when the SSH/SFTP session cannot be established."""


class IgnoreRuleParseError(RepoSyncError):
    """Raised when an exclusion pattern is malformed.

    This is fatal and happens before any tree is scanned.
    """

    def __init__(self, pattern: str, source: str, reason: str):
        self.pattern = pattern
        self.source = source
        self.reason = reason
        super().__init__(f"invalid ignore pattern {pattern!r} in {source}: {reason}")


class TransportError(RepoSyncError):
    """Raised when a single endpoint operation fails.

    Wraps endpoint specific failures (permission denied, path too long,
    connection dropped) so callers never have to know which endpoint
    they are talking to.
    """

    def __init__(self, operation: str, path: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.path = path
        self.cause = cause
        message = f"{operation} failed for {path or '.'}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ScanError(RepoSyncError):
    """Raised when an endpoint cannot be traversed."""

    def __init__(self, endpoint: str, path: str, cause: Optional[BaseException] = None):
        self.endpoint = endpoint
        self.path = path
        self.cause = cause
        message = f"failed to scan {endpoint}"
        if path:
            message += f" at {path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ConflictError(RepoSyncError):
    """Raised when a file/directory kind mismatch cannot be resolved."""

    def __init__(self, conflicts: "list[Conflict]"):
        self.conflicts = conflicts
        details = ", ".join(str(c) for c in conflicts)
        super().__init__(f"{len(conflicts)} unresolved conflict(s): {details}")


class ExecutionAborted(RepoSyncError):
    """Raised when an action fails and the remaining plan is abandoned.

    The partial log up to and including the failed action is available
    as ``log``.
    """

    def __init__(
        self,
        log: "ActionLog",
        action: "Action",
        cause: Optional[BaseException] = None,
    ):
        self.log = log
        self.action = action
        self.cause = cause
        message = f"sync aborted at {action.kind.value} {action.path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class SyncCancelled(RepoSyncError):
    """Raised when execution is cancelled between two actions."""

    def __init__(self, log: "ActionLog"):
        self.log = log
        super().__init__(
            f"sync cancelled after {len(log.entries)} of {log.planned_total} action(s)"
        )
