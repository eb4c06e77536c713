"""Actions and the ordered sync plan."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from ..utils import format_size, is_descendant
from .models import Entry, EntryKind


class ActionKind(str, Enum):
    """Mutations that can be applied to the destination endpoint."""

    MKDIR = "mkdir"
    """Create a directory"""

    PUT_FILE = "put"
    """Write (create or overwrite) a file from the source"""

    RM_FILE = "rm"
    """Remove a file"""

    RM_DIR = "rmdir"
    """Remove an (empty) directory"""

    @property
    def is_removal(self) -> bool:
        return self in (ActionKind.RM_FILE, ActionKind.RM_DIR)

    @property
    def is_directory_action(self) -> bool:
        return self in (ActionKind.MKDIR, ActionKind.RM_DIR)


@dataclass(frozen=True)
class Action:
    """One planned mutation against the destination endpoint."""

    kind: ActionKind
    """What to do"""

    path: str
    """Relative path the action applies to"""

    size: Optional[int] = None
    """Source file size for PUT_FILE actions"""

    reason: str = ""
    """Human-readable reason for this action"""

    @classmethod
    def mkdir(cls, path: str, reason: str = "New directory") -> "Action":
        return cls(ActionKind.MKDIR, path, reason=reason)

    @classmethod
    def put_file(cls, path: str, size: int, reason: str = "New file") -> "Action":
        return cls(ActionKind.PUT_FILE, path, size=size, reason=reason)

    @classmethod
    def rm_file(cls, path: str, reason: str = "Not present in source") -> "Action":
        return cls(ActionKind.RM_FILE, path, reason=reason)

    @classmethod
    def rm_dir(cls, path: str, reason: str = "Not present in source") -> "Action":
        return cls(ActionKind.RM_DIR, path, reason=reason)

    def describe(self) -> str:
        """Short description such as ``put docs/a.txt (5 B)``."""
        if self.kind == ActionKind.PUT_FILE:
            return f"put {self.path} ({format_size(self.size)})"
        if self.kind == ActionKind.MKDIR:
            return f"create directory {self.path}"
        if self.kind == ActionKind.RM_FILE:
            return f"remove file {self.path}"
        return f"remove directory {self.path}"

    def to_dict(self) -> dict:
        return {
            "action": self.kind.value,
            "path": self.path,
            "size": self.size,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Conflict:
    """A path that is a file on one side and a directory on the other."""

    path: str
    source_kind: EntryKind
    destination_kind: EntryKind
    resolvable: bool = True
    """False when the destination directory holds ignored content"""

    def __str__(self) -> str:
        return (
            f"{self.path} is a {self.source_kind.value} in the source but a "
            f"{self.destination_kind.value} in the destination"
        )


@dataclass
class SyncPlan:
    """Ordered, dependency-correct sequence of actions.

    Every MKDIR for a directory comes before any PUT_FILE beneath it, and
    every removal beneath a directory comes before that directory's RM_DIR.
    """

    actions: list[Action] = field(default_factory=list)
    """Mutations in execution order"""

    unchanged: list[Entry] = field(default_factory=list)
    """Source entries that need no action"""

    conflicts: list[Conflict] = field(default_factory=list)
    """File/directory kind mismatches found while diffing"""

    retained: list[str] = field(default_factory=list)
    """Destination-only directories kept because they contain ignored entries"""

    @property
    def in_sync(self) -> bool:
        return not self.actions

    @property
    def total(self) -> int:
        return len(self.actions)

    def counts(self) -> dict[str, int]:
        """Number of actions per kind, keyed by ActionKind value."""
        stats = {kind.value: 0 for kind in ActionKind}
        for action in self.actions:
            stats[action.kind.value] += 1
        return stats

    def paths(self) -> set[str]:
        return {action.path for action in self.actions}

    def ordering_violations(self) -> list[tuple[Action, Action]]:
        """Pairs of actions that break the ordering invariant.

        Returns an empty list for every plan produced by the DiffEngine.
        """
        violations: list[tuple[Action, Action]] = []
        for i, earlier in enumerate(self.actions):
            for later in self.actions[i + 1 :]:
                # creation under a directory that is only created afterwards
                if (
                    later.kind == ActionKind.MKDIR
                    and earlier.kind in (ActionKind.PUT_FILE, ActionKind.MKDIR)
                    and is_descendant(earlier.path, later.path)
                ):
                    violations.append((earlier, later))
                # RM_DIR before something beneath it is removed
                if (
                    earlier.kind == ActionKind.RM_DIR
                    and later.kind.is_removal
                    and is_descendant(later.path, earlier.path)
                ):
                    violations.append((earlier, later))
        return violations

    def __iter__(self) -> Iterator[Action]:
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)
