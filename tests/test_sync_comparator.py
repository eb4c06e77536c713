"""Tests for the DiffEngine."""

import pytest

from reposync.exceptions import ConflictError
from reposync.sync import (
    Action,
    ActionKind,
    DiffEngine,
    Entry,
    EntryKind,
    IgnoreMatcher,
    Snapshot,
    diff,
)


def snapshot(files: dict, ignored: tuple = ()) -> Snapshot:
    """Build a snapshot; ``None`` values are directories, ints are file sizes.

    Parent directories are created implicitly.
    """
    entries: dict[str, Entry] = {}
    for path, size in files.items():
        parts = path.split("/")
        for i in range(1, len(parts)):
            parent = "/".join(parts[:i])
            entries.setdefault(parent, Entry.directory(parent))
        entries[path] = Entry.directory(path) if size is None else Entry.file(path, size)
    result = Snapshot.from_entries(list(entries.values()))
    for path in ignored:
        result.mark_ignored(path)
    return result


def kinds_and_paths(plan) -> list[tuple[ActionKind, str]]:
    return [(a.kind, a.path) for a in plan.actions]


class TestChangeDetection:
    """Tests for size-based change detection."""

    def test_size_change_puts_source_size(self):
        plan = diff(snapshot({"a": 10}), snapshot({"a": 12}))
        assert plan.actions == [
            Action.put_file("a", 10, reason="Size changed (12 -> 10 bytes)")
        ]

    def test_equal_size_is_unchanged(self):
        plan = diff(snapshot({"a": 10}), snapshot({"a": 10}))
        assert plan.in_sync
        assert [e.relative_path for e in plan.unchanged] == ["a"]

    def test_identical_trees_produce_empty_plan(self):
        files = {"docs/a.txt": 5, "docs/sub": None, "top.bin": 100}
        plan = diff(snapshot(files), snapshot(files))
        assert plan.actions == []
        assert plan.total == 0


class TestCreation:
    """Tests for entries only present in the source."""

    def test_new_file(self):
        plan = diff(snapshot({"a.txt": 3}), snapshot({}))
        assert plan.actions == [Action.put_file("a.txt", 3)]

    def test_new_directory_tree_is_created_top_down(self):
        source = snapshot({"d/e/f.txt": 1, "d/g.txt": 2, "d/empty": None})
        plan = diff(source, snapshot({}))

        assert set(kinds_and_paths(plan)) == {
            (ActionKind.MKDIR, "d"),
            (ActionKind.MKDIR, "d/e"),
            (ActionKind.MKDIR, "d/empty"),
            (ActionKind.PUT_FILE, "d/e/f.txt"),
            (ActionKind.PUT_FILE, "d/g.txt"),
        }
        assert plan.actions[0] == Action.mkdir("d")
        assert plan.ordering_violations() == []


class TestRemoval:
    """Tests for entries only present in the destination."""

    def test_extra_file_removed(self):
        plan = diff(snapshot({}), snapshot({"old.txt": 1}))
        assert plan.actions == [Action.rm_file("old.txt")]

    def test_extra_directory_removed_bottom_up(self):
        destination = snapshot({"d/e/f.txt": 1, "d/g.txt": 2})
        plan = diff(snapshot({}), destination)

        assert set(kinds_and_paths(plan)) == {
            (ActionKind.RM_FILE, "d/e/f.txt"),
            (ActionKind.RM_FILE, "d/g.txt"),
            (ActionKind.RM_DIR, "d/e"),
            (ActionKind.RM_DIR, "d"),
        }
        assert plan.actions[-1] == Action.rm_dir("d")
        assert plan.ordering_violations() == []

    def test_directory_with_ignored_content_is_retained(self):
        # "d/cache" was pruned by the scanner, so "d" must survive
        destination = snapshot({"d/x.txt": 1}, ignored=("d/cache",))
        plan = diff(snapshot({}), destination)

        assert plan.actions == [Action.rm_file("d/x.txt")]
        assert plan.retained == ["d"]

    def test_matcher_protects_destination_entries(self):
        matcher = IgnoreMatcher.from_patterns(["*.log"])
        destination = snapshot({"d/x.log": 1, "d/y.txt": 1})
        plan = DiffEngine(matcher).diff(snapshot({}), destination)

        assert plan.actions == [Action.rm_file("d/y.txt")]
        assert plan.retained == ["d"]


class TestConflicts:
    """Tests for file/directory kind mismatches."""

    def test_file_replaced_by_directory(self):
        source = snapshot({"p/child.txt": 4})
        destination = snapshot({"p": 7})
        plan = diff(source, destination)

        assert kinds_and_paths(plan) == [
            (ActionKind.RM_FILE, "p"),
            (ActionKind.MKDIR, "p"),
            (ActionKind.PUT_FILE, "p/child.txt"),
        ]
        assert len(plan.conflicts) == 1
        assert plan.conflicts[0].path == "p"

    def test_directory_replaced_by_file(self):
        source = snapshot({"p": 7})
        destination = snapshot({"p/child.txt": 4})
        plan = diff(source, destination)

        assert kinds_and_paths(plan) == [
            (ActionKind.RM_FILE, "p/child.txt"),
            (ActionKind.RM_DIR, "p"),
            (ActionKind.PUT_FILE, "p"),
        ]

    def test_strict_mode_raises(self):
        with pytest.raises(ConflictError) as exc_info:
            diff(snapshot({"p": 1}), snapshot({"p": None}), replace_conflicts=False)
        assert [c.path for c in exc_info.value.conflicts] == ["p"]

    def test_strict_mode_lists_all_conflicts(self):
        source = snapshot({"a": 1, "b": None, "c": 3})
        destination = snapshot({"a": None, "b": 2, "c": 3})
        with pytest.raises(ConflictError) as exc_info:
            diff(source, destination, replace_conflicts=False)
        assert sorted(c.path for c in exc_info.value.conflicts) == ["a", "b"]

    def test_directory_with_ignored_content_cannot_be_replaced(self):
        source = snapshot({"p": 1})
        destination = snapshot({"p/x.txt": 1}, ignored=("p/build",))
        with pytest.raises(ConflictError) as exc_info:
            diff(source, destination)
        assert exc_info.value.conflicts[0].resolvable is False

    def test_file_over_ignored_destination_directory(self):
        # "build/" only matches directories, so the source file is kept
        source = snapshot({"build": 4})
        destination = snapshot({}, ignored=("build",))
        with pytest.raises(ConflictError) as exc_info:
            diff(source, destination)
        conflict = exc_info.value.conflicts[0]
        assert conflict.path == "build"
        assert conflict.source_kind == EntryKind.FILE
        assert conflict.destination_kind == EntryKind.DIRECTORY
        assert conflict.resolvable is False

    def test_destination_file_over_ignored_source_directory(self):
        source = snapshot({}, ignored=("build",))
        destination = snapshot({"build": 4})
        with pytest.raises(ConflictError) as exc_info:
            diff(source, destination)
        conflict = exc_info.value.conflicts[0]
        assert conflict.source_kind == EntryKind.DIRECTORY
        assert conflict.destination_kind == EntryKind.FILE


class TestEndToEndScenario:
    """The reference scenario with an ignored build directory."""

    def test_only_stale_file_is_removed(self):
        matcher = IgnoreMatcher.from_patterns(["build/"])
        # the scanner prunes "build" on both sides
        source = snapshot({"docs/a.txt": 5}, ignored=("build",))
        destination = snapshot({"docs/a.txt": 5, "docs/old.txt": 3}, ignored=("build",))

        plan = DiffEngine(matcher).diff(source, destination)

        assert plan.actions == [Action.rm_file("docs/old.txt")]

    def test_plan_is_idempotent(self):
        files = {"docs/a.txt": 5, "docs/old.txt": 3}
        plan = diff(snapshot({"docs/a.txt": 5}), snapshot(files))
        assert len(plan) == 1
        # after applying the plan both sides are equal
        assert diff(snapshot({"docs/a.txt": 5}), snapshot({"docs/a.txt": 5})).in_sync


class TestPlanHelpers:
    """Tests for SyncPlan helpers."""

    def test_counts(self):
        plan = diff(snapshot({"n/a": 1}), snapshot({"old": 1}))
        assert plan.counts() == {"mkdir": 1, "put": 1, "rm": 1, "rmdir": 0}

    def test_ordering_violations_detects_bad_order(self):
        plan = diff(snapshot({"n/a": 1}), snapshot({}))
        plan.actions.reverse()
        assert plan.ordering_violations() == [
            (Action.put_file("n/a", 1), Action.mkdir("n"))
        ]

    def test_describe(self):
        assert Action.put_file("docs/a.txt", 5).describe() == "put docs/a.txt (5 B)"
        assert Action.mkdir("d").describe() == "create directory d"
        assert Action.rm_file("f").describe() == "remove file f"
        assert Action.rm_dir("d").describe() == "remove directory d"
