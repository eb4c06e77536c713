"""Entries and snapshots describing one endpoint's tree."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from ..utils import normalize_relative_path, parent_of


class EntryKind(str, Enum):
    """Kind of filesystem object tracked by a snapshot."""

    FILE = "file"
    """Regular file"""

    DIRECTORY = "directory"
    """Directory (tracked so empty directories are representable)"""


@dataclass(frozen=True)
class Entry:
    """One filesystem object below an endpoint root."""

    relative_path: str
    """Slash-normalized path without leading or trailing slash"""

    kind: EntryKind
    """File or directory"""

    size: int = 0
    """File size in bytes (always 0 for directories)"""

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    @property
    def name(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]

    @classmethod
    def file(cls, relative_path: str, size: int) -> "Entry":
        return cls(normalize_relative_path(relative_path), EntryKind.FILE, size)

    @classmethod
    def directory(cls, relative_path: str) -> "Entry":
        return cls(normalize_relative_path(relative_path), EntryKind.DIRECTORY)

    def __str__(self) -> str:
        if self.is_dir:
            return f"{self.relative_path}/"
        return f"{self.relative_path} ({self.size} bytes)"


class Snapshot:
    """Filtered set of entries found under one endpoint root.

    Entries are keyed by relative path and iterate in path order. Every
    entry's parent directory must already be present, so no file is ever
    orphaned. Paths the scanner skipped because of ignore rules are kept
    in ``ignored``; they never take part in diffing but tell the planner
    which destination directories still hold excluded content.

    Examples:
        >>> snapshot = Snapshot("local")
        >>> snapshot.add(Entry.directory("docs"))
        >>> snapshot.add(Entry.file("docs/a.txt", 5))
        >>> [e.relative_path for e in snapshot]
        ['docs', 'docs/a.txt']
    """

    def __init__(self, label: str = ""):
        self.label = label
        self.ignored: set[str] = set()
        self._entries: dict[str, Entry] = {}
        self._children: dict[str, list[str]] = {"": []}

    def add(self, entry: Entry) -> None:
        """Add an entry whose parent directory is already present.

        Raises:
            ValueError: If the path is empty, already present, or its
                parent directory is missing
        """
        path = entry.relative_path
        if not path:
            raise ValueError("The snapshot root cannot be added as an entry")
        if path in self._entries:
            raise ValueError(f"Duplicate snapshot entry: {path}")
        parent = parent_of(path)
        if parent not in self._children:
            raise ValueError(f"Parent directory of {path} is not in the snapshot")
        self._entries[path] = entry
        self._children[parent].append(entry.name)
        if entry.is_dir:
            self._children[path] = []

    def mark_ignored(self, relative_path: str) -> None:
        """Record a path that was skipped by the ignore rules."""
        self.ignored.add(relative_path)

    def get(self, relative_path: str) -> Optional[Entry]:
        return self._entries.get(relative_path)

    def child_names(self, directory: str = "") -> list[str]:
        """Names of the direct children of ``directory`` in sorted order."""
        return sorted(self._children.get(directory, ()))

    def children(self, directory: str = "") -> list[Entry]:
        prefix = f"{directory}/" if directory else ""
        return [self._entries[prefix + name] for name in self.child_names(directory)]

    def files(self) -> list[Entry]:
        return [e for e in self if e.is_file]

    def directories(self) -> list[Entry]:
        return [e for e in self if e.is_dir]

    def paths(self) -> list[str]:
        return sorted(self._entries)

    def __getitem__(self, relative_path: str) -> Entry:
        return self._entries[relative_path]

    def __contains__(self, relative_path: object) -> bool:
        return relative_path in self._entries

    def __iter__(self) -> Iterator[Entry]:
        for path in sorted(self._entries):
            yield self._entries[path]

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"Snapshot({self.label!r}, directories={len(self.directories())}, "
            f"files={len(self.files())}, ignored={len(self.ignored)})"
        )

    @classmethod
    def from_entries(cls, entries: "list[Entry]", label: str = "") -> "Snapshot":
        """Build a snapshot from entries in any order.

        Entries are added parents-first; missing parents still raise.
        """
        snapshot = cls(label)
        for entry in sorted(entries, key=lambda e: e.relative_path.count("/")):
            snapshot.add(entry)
        return snapshot
