"""Directory scanning for sync operations."""

import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import ScanError, TransportError
from .ignore import IgnoreContext, IgnoreMatcher
from .models import Snapshot

if TYPE_CHECKING:
    from .endpoints import Endpoint

logger = logging.getLogger(__name__)


class TreeScanner:
    """Walks an endpoint's root and builds a Snapshot.

    The walk is depth-first and carries an ``IgnoreContext`` down the
    recursion. Directories matched by the ignore rules are pruned: they
    are never listed, so nothing below them can appear in the snapshot
    (or ever be scheduled for deletion).

    Examples:
        >>> scanner = TreeScanner(IgnoreMatcher.from_directory(Path(".")))
        >>> snapshot = scanner.scan(LocalEndpoint(Path(".")))
        >>> print(len(snapshot.files()))
    """

    def __init__(self, matcher: Optional[IgnoreMatcher] = None):
        """Initialize tree scanner.

        Args:
            matcher: Ignore matcher built from the local root (None to
                include everything)
        """
        self.matcher = matcher if matcher is not None else IgnoreMatcher()

    def scan(self, endpoint: "Endpoint", allow_missing_root: bool = False) -> Snapshot:
        """Scan the endpoint's whole tree.

        Args:
            endpoint: Endpoint to scan
            allow_missing_root: Return an empty snapshot instead of failing
                when the root directory does not exist

        Returns:
            Snapshot of all non-ignored entries

        Raises:
            ScanError: If the root is missing or any directory cannot be read
        """
        snapshot = Snapshot(endpoint.label)
        try:
            root_exists = endpoint.exists()
        except TransportError as e:
            raise ScanError(endpoint.label, "", e) from e
        if not root_exists:
            if allow_missing_root:
                logger.debug("Root of %s does not exist yet", endpoint.label)
                return snapshot
            raise ScanError(endpoint.label, "", FileNotFoundError("root directory not found"))

        self._scan_directory(endpoint, "", self.matcher.root(), snapshot)
        logger.debug(
            "Scanned %s: %d directories, %d files, %d ignored",
            endpoint.label,
            len(snapshot.directories()),
            len(snapshot.files()),
            len(snapshot.ignored),
        )
        return snapshot

    def _scan_directory(
        self,
        endpoint: "Endpoint",
        directory: str,
        context: IgnoreContext,
        snapshot: Snapshot,
    ) -> None:
        try:
            entries = endpoint.list_directory(directory)
        except TransportError as e:
            raise ScanError(endpoint.label, directory, e) from e

        for entry in sorted(entries, key=lambda e: e.relative_path):
            if context.is_ignored(entry.name, entry.kind):
                logger.debug("Ignoring (from rules): %s", entry.relative_path)
                snapshot.mark_ignored(entry.relative_path)
                continue
            snapshot.add(entry)
            if entry.is_dir:
                self._scan_directory(
                    endpoint,
                    entry.relative_path,
                    context.child(entry.name),
                    snapshot,
                )


def scan(
    endpoint: "Endpoint",
    matcher: Optional[IgnoreMatcher] = None,
    allow_missing_root: bool = False,
) -> Snapshot:
    """Scan an endpoint with the given ignore matcher."""
    return TreeScanner(matcher).scan(endpoint, allow_missing_root=allow_missing_root)
