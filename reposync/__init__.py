"""git-repo-sync - Sync a git working tree with a remote directory over SFTP."""

__version__ = "0.3.0"

from .exceptions import (  # noqa: E402
    ConfigError,
    ConflictError,
    ExecutionAborted,
    IgnoreRuleParseError,
    RemoteConnectionError,
    RepoSyncError,
    ScanError,
    SyncCancelled,
    TransportError,
)
from .ssh import RemoteSpec, open_remote  # noqa: E402
from .sync import SyncDirection, SyncEngine, SyncResult  # noqa: E402

__all__ = [
    "__version__",
    "SyncEngine",
    "SyncResult",
    "SyncDirection",
    "RemoteSpec",
    "open_remote",
    "RepoSyncError",
    "ConfigError",
    "ConflictError",
    "ExecutionAborted",
    "IgnoreRuleParseError",
    "RemoteConnectionError",
    "ScanError",
    "SyncCancelled",
    "TransportError",
]
