"""Sync core for git-repo-sync - scanning, diffing and executing sync plans."""

from .comparator import DiffEngine, diff
from .endpoints import Endpoint, LocalEndpoint, RemoteEndpoint
from .engine import SyncEngine, SyncResult
from .executor import ActionLog, ActionStatus, Executor, LogEntry
from .ignore import IgnoreContext, IgnoreMatcher, IgnoreRule, IgnoreRuleSet
from .models import Entry, EntryKind, Snapshot
from .modes import ExecutionMode, SyncDirection
from .plan import Action, ActionKind, Conflict, SyncPlan
from .scanner import TreeScanner, scan

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncDirection",
    "ExecutionMode",
    "Endpoint",
    "LocalEndpoint",
    "RemoteEndpoint",
    "TreeScanner",
    "scan",
    "DiffEngine",
    "diff",
    "Executor",
    "ActionLog",
    "ActionStatus",
    "LogEntry",
    "Action",
    "ActionKind",
    "Conflict",
    "SyncPlan",
    "Entry",
    "EntryKind",
    "Snapshot",
    "IgnoreMatcher",
    "IgnoreRule",
    "IgnoreRuleSet",
    "IgnoreContext",
]
