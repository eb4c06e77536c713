"""Sync direction and execution mode."""

from enum import Enum


class SyncDirection(str, Enum):
    """Which endpoint is the source and which is the destination."""

    UP = "up"
    """Local tree is the source, remote tree is updated"""

    DOWN = "down"
    """Remote tree is the source, local tree is updated"""

    @property
    def source_is_local(self) -> bool:
        return self == SyncDirection.UP

    @property
    def source_name(self) -> str:
        return "local" if self == SyncDirection.UP else "remote"

    @property
    def destination_name(self) -> str:
        return "remote" if self == SyncDirection.UP else "local"


class ExecutionMode(str, Enum):
    """How the executor treats a plan."""

    APPLY = "apply"
    """Perform every action against the destination"""

    DRY = "dry"
    """Only report what would be performed"""
