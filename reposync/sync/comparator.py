"""Tree comparison logic for sync operations."""

import logging
from typing import Optional

from ..exceptions import ConflictError
from ..utils import ancestors_of, join_relative
from .ignore import IgnoreMatcher
from .models import Entry, EntryKind, Snapshot
from .plan import Action, Conflict, SyncPlan

logger = logging.getLogger(__name__)


class DiffEngine:
    """Compares a source and a destination snapshot and plans actions.

    Change detection is by size only: two files with the same size are
    considered identical even if their contents differ.

    The plan is produced by walking the merged tree depth-first, so
    directory creations are emitted before anything beneath them and
    directory removals after everything beneath them.
    """

    def __init__(
        self,
        matcher: Optional[IgnoreMatcher] = None,
        replace_conflicts: bool = True,
    ):
        """Initialize diff engine.

        Args:
            matcher: Ignore matcher consulted before scheduling removals
            replace_conflicts: Replace destination entries whose kind
                differs from the source; if False, raise ConflictError
        """
        self.matcher = matcher
        self.replace_conflicts = replace_conflicts

    def diff(self, source: Snapshot, destination: Snapshot) -> SyncPlan:
        """Compute the plan that makes ``destination`` match ``source``.

        Args:
            source: Snapshot of the source endpoint
            destination: Snapshot of the destination endpoint

        Returns:
            SyncPlan with actions in execution order

        Raises:
            ConflictError: If a kind mismatch cannot or may not be resolved
        """
        self._source = source
        self._destination = destination
        self._retained = {
            ancestor
            for path in destination.ignored
            for ancestor in ancestors_of(path)
        }
        plan = SyncPlan()
        self._diff_directory("", plan)

        unresolved = [
            c for c in plan.conflicts if not c.resolvable or not self.replace_conflicts
        ]
        if unresolved:
            raise ConflictError(unresolved)

        logger.debug(
            "Planned %d action(s), %d unchanged, %d conflict(s)",
            len(plan.actions),
            len(plan.unchanged),
            len(plan.conflicts),
        )
        return plan

    def _diff_directory(self, directory: str, plan: SyncPlan) -> None:
        names = set(self._source.child_names(directory))
        names.update(self._destination.child_names(directory))

        for name in sorted(names):
            path = join_relative(directory, name)
            source_entry = self._source.get(path)
            destination_entry = self._destination.get(path)

            # Case 1: Only in destination, the source counterpart was ignored
            if source_entry is None and path in self._source.ignored:
                self._hidden_conflict(path, destination_entry.kind, plan, source_side=False)

            # Case 2: Only in destination
            elif source_entry is None:
                self._remove(destination_entry, plan)

            # Case 3: Only in source, the destination counterpart was ignored
            elif destination_entry is None and path in self._destination.ignored:
                self._hidden_conflict(path, source_entry.kind, plan, source_side=True)

            # Case 4: Only in source
            elif destination_entry is None:
                self._create(source_entry, plan)

            # Case 5: Kind changed between source and destination
            elif source_entry.kind != destination_entry.kind:
                self._replace(source_entry, destination_entry, plan)

            # Case 6: Directory on both sides
            elif source_entry.is_dir:
                self._diff_directory(path, plan)

            # Case 7: File on both sides
            elif source_entry.size != destination_entry.size:
                plan.actions.append(
                    Action.put_file(
                        path,
                        source_entry.size,
                        reason=(
                            f"Size changed ({destination_entry.size} -> "
                            f"{source_entry.size} bytes)"
                        ),
                    )
                )
            else:
                logger.debug("Unchanged (same size): %s", path)
                plan.unchanged.append(source_entry)

    def _create(self, entry: Entry, plan: SyncPlan) -> None:
        if entry.is_file:
            plan.actions.append(Action.put_file(entry.relative_path, entry.size))
            return
        plan.actions.append(Action.mkdir(entry.relative_path))
        for child in self._source.children(entry.relative_path):
            self._create(child, plan)

    def _remove(self, entry: Entry, plan: SyncPlan) -> None:
        path = entry.relative_path
        if self.matcher is not None and self.matcher.is_ignored(path, entry.kind):
            logger.debug("Keeping ignored destination entry: %s", path)
            self._retained.update(ancestors_of(path))
            return
        if entry.is_file:
            plan.actions.append(Action.rm_file(path))
            return
        for child in self._destination.children(path):
            self._remove(child, plan)
        if path in self._retained:
            logger.warning("Keeping %s: it contains ignored entries", path)
            plan.retained.append(path)
        else:
            plan.actions.append(Action.rm_dir(path))

    def _hidden_conflict(
        self, path: str, kind: EntryKind, plan: SyncPlan, source_side: bool
    ) -> None:
        # Rules only differ by kind here, so the hidden entry has the other kind.
        other = EntryKind.FILE if kind == EntryKind.DIRECTORY else EntryKind.DIRECTORY
        conflict = Conflict(
            path=path,
            source_kind=kind if source_side else other,
            destination_kind=other if source_side else kind,
            resolvable=False,
        )
        logger.warning("Conflict: %s (one side is excluded by ignore rules)", conflict)
        plan.conflicts.append(conflict)

    def _replace(self, source_entry: Entry, destination_entry: Entry, plan: SyncPlan) -> None:
        path = source_entry.relative_path
        conflict = Conflict(
            path=path,
            source_kind=source_entry.kind,
            destination_kind=destination_entry.kind,
        )
        if not self.replace_conflicts:
            logger.warning("Conflict: %s", conflict)
            plan.conflicts.append(conflict)
            return

        reason = (
            f"Replacing {destination_entry.kind.value} with {source_entry.kind.value}"
        )
        if destination_entry.is_file:
            plan.actions.append(Action.rm_file(path, reason=reason))
        else:
            for child in self._destination.children(path):
                self._remove(child, plan)
            if path in self._retained:
                conflict = Conflict(
                    path=path,
                    source_kind=source_entry.kind,
                    destination_kind=destination_entry.kind,
                    resolvable=False,
                )
                logger.warning("Conflict: %s (directory holds ignored entries)", conflict)
                plan.conflicts.append(conflict)
                return
            plan.actions.append(Action.rm_dir(path, reason=reason))

        logger.warning("Conflict: %s", conflict)
        plan.conflicts.append(conflict)

        if source_entry.is_file:
            plan.actions.append(Action.put_file(path, source_entry.size, reason=reason))
        else:
            plan.actions.append(Action.mkdir(path, reason=reason))
            for child in self._source.children(path):
                self._create(child, plan)


def diff(
    source: Snapshot,
    destination: Snapshot,
    matcher: Optional[IgnoreMatcher] = None,
    replace_conflicts: bool = True,
) -> SyncPlan:
    """Compute the sync plan between two snapshots."""
    return DiffEngine(matcher, replace_conflicts).diff(source, destination)
