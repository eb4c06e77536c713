"""Gitignore-style exclusion rules gathered from the local tree.

Rules are read from ``.gitignore`` files found while walking the local
root, plus the user's global excludes file (``core.excludesFile``),
``.git/info/exclude`` and patterns given on the command line.
Each rule is scoped to the directory it was declared in. Pattern syntax
follows gitignore (compiled by ``dulwich.ignore.Pattern``).

Precedence follows git: within one scope the last matching rule wins, a
deeper scope wins over a shallower one, and a negated rule can only
re-include paths inside its own scope. Once a directory is ignored its
whole subtree is ignored and never descended into.

The rule set is built once from the local side and the same matcher is
applied to both the local and the remote tree.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from dulwich.config import ConfigFile, StackedConfig
from dulwich.ignore import (
    Pattern,
    default_user_ignore_filter_path,
    read_ignore_patterns,
)

from ..exceptions import IgnoreRuleParseError, ScanError
from ..utils import GIT_DIR_NAME, IGNORE_FILE_NAME, join_relative
from .models import EntryKind

logger = logging.getLogger(__name__)

CLI_SOURCE = "<command line>"


@dataclass
class IgnoreRule:
    """A single exclusion pattern scoped to a directory."""

    pattern: str
    """Pattern text as declared (including a leading ``!`` if negated)"""

    scope: str = ""
    """Relative directory the rule was declared in ("" for the root)"""

    negated: bool = False
    """True if the rule re-includes matching paths"""

    source: str = CLI_SOURCE
    """Where the rule came from (file path or ``<command line>``)"""

    _compiled: Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._compiled = Pattern(self.pattern.encode("utf-8"))

    @classmethod
    def parse(
        cls,
        pattern: Union[str, bytes],
        scope: str = "",
        source: str = CLI_SOURCE,
    ) -> "IgnoreRule":
        """Parse and compile one pattern line.

        Args:
            pattern: Pattern text, already stripped of comments and
                trailing whitespace
            scope: Directory the pattern applies to
            source: Origin of the pattern, used in error messages

        Returns:
            Compiled IgnoreRule

        Raises:
            IgnoreRuleParseError: If the pattern is malformed
        """
        if isinstance(pattern, bytes):
            try:
                text = pattern.decode("utf-8")
            except UnicodeDecodeError:
                raise IgnoreRuleParseError(
                    repr(pattern), source, "pattern is not valid UTF-8"
                ) from None
            raw = pattern
        else:
            text = pattern
            raw = pattern.encode("utf-8")

        negated = raw.startswith(b"!")
        body = raw[1:] if negated else raw
        if not body:
            raise IgnoreRuleParseError(text, source, "negation without a pattern")
        trailing = len(body) - len(body.rstrip(b"\\"))
        if trailing % 2 == 1:
            raise IgnoreRuleParseError(text, source, "trailing unescaped backslash")

        try:
            return cls(pattern=text, scope=scope, negated=negated, source=source)
        except re.error as e:
            raise IgnoreRuleParseError(text, source, str(e)) from e

    def matches(self, scoped_path: str, is_dir: bool = False) -> bool:
        """Check a path given relative to this rule's scope."""
        check = scoped_path + "/" if is_dir else scoped_path
        return self._compiled.match(check.encode("utf-8", "surrogateescape"))


def user_excludes_path(root: Path) -> Path:
    """Locate the global excludes file git would apply to ``root``.

    Honours ``core.excludesFile`` from the repository and user git config,
    falling back to ``$XDG_CONFIG_HOME/git/ignore``.

    Raises:
        ScanError: If a git config file cannot be read or parsed
    """
    backends = StackedConfig.default_backends()
    repo_config = root / GIT_DIR_NAME / "config"
    try:
        if repo_config.is_file():
            backends.insert(0, ConfigFile.from_path(str(repo_config)))
        path = default_user_ignore_filter_path(StackedConfig(backends))
    except (OSError, ValueError) as e:
        raise ScanError("local", "git config", e) from e
    return Path(os.path.expanduser(path))


class IgnoreRuleSet:
    """Ordered rules grouped by the directory that declared them."""

    def __init__(self) -> None:
        # {scope: [rules in declaration order]}
        self._rules: dict[str, list[IgnoreRule]] = {}

    def add(self, rule: IgnoreRule) -> None:
        self._rules.setdefault(rule.scope, []).append(rule)

    def add_patterns(
        self,
        patterns: Iterable[Union[str, bytes]],
        scope: str = "",
        source: str = CLI_SOURCE,
    ) -> int:
        """Parse and add patterns, skipping blanks and comments.

        Returns:
            Number of rules added
        """
        count = 0
        for pattern in patterns:
            if isinstance(pattern, str):
                pattern = pattern.strip()
                if not pattern or pattern.startswith("#"):
                    continue
            self.add(IgnoreRule.parse(pattern, scope=scope, source=source))
            count += 1
        return count

    def load_file(self, path: Path, scope: str = "") -> int:
        """Load rules from an ignore file.

        Args:
            path: Path of the ignore file
            scope: Directory the file's rules apply to

        Returns:
            Number of rules loaded

        Raises:
            IgnoreRuleParseError: If any pattern in the file is malformed
            ScanError: If the file cannot be read
        """
        try:
            with open(path, "rb") as f:
                patterns = list(read_ignore_patterns(f))
        except OSError as e:
            raise ScanError("local", str(path), e) from e
        count = self.add_patterns(patterns, scope=scope, source=str(path))
        logger.debug("Loaded %d rule(s) from %s", count, path)
        return count

    def rules_for(self, scope: str) -> tuple[IgnoreRule, ...]:
        return tuple(self._rules.get(scope, ()))

    def scopes(self) -> list[str]:
        return sorted(self._rules)

    def __iter__(self) -> Iterator[IgnoreRule]:
        for scope in self.scopes():
            yield from self._rules[scope]

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._rules.values())

    @classmethod
    def from_directory(
        cls,
        root: Path,
        extra_patterns: Sequence[str] = (),
        use_gitignore: bool = True,
    ) -> "IgnoreRuleSet":
        """Gather all rules that apply below a local root.

        The tree is walked depth-first and ``.gitignore`` files are only
        read from directories that are not themselves ignored.

        Args:
            root: Local root directory
            extra_patterns: Additional root-scoped patterns
            use_gitignore: Whether to read ``.gitignore`` files, the
                user's global excludes file and ``.git/info/exclude``

        Returns:
            Populated IgnoreRuleSet

        Raises:
            IgnoreRuleParseError: If any pattern is malformed
            ScanError: If a directory or ignore file cannot be read
        """
        rule_set = cls()
        if use_gitignore:
            user_excludes = user_excludes_path(root)
            if user_excludes.is_file():
                rule_set.load_file(user_excludes, "")
            info_exclude = root / GIT_DIR_NAME / "info" / "exclude"
            if info_exclude.is_file():
                rule_set.load_file(info_exclude, "")
            if (root / IGNORE_FILE_NAME).is_file():
                rule_set.load_file(root / IGNORE_FILE_NAME, "")
        rule_set.add_patterns(extra_patterns)

        if use_gitignore and root.is_dir():
            rule_set._discover(root, IgnoreContext.for_root(rule_set))
        return rule_set

    def _discover(self, directory: Path, context: "IgnoreContext") -> None:
        try:
            with os.scandir(directory) as it:
                subdirs = sorted(
                    e.name for e in it if e.is_dir(follow_symlinks=False)
                )
        except OSError as e:
            raise ScanError("local", context.path, e) from e

        for name in subdirs:
            if context.is_ignored(name, EntryKind.DIRECTORY):
                continue
            child_dir = directory / name
            if (child_dir / IGNORE_FILE_NAME).is_file():
                self.load_file(
                    child_dir / IGNORE_FILE_NAME, join_relative(context.path, name)
                )
            self._discover(child_dir, context.child(name))


class IgnoreContext:
    """Rules in effect inside one directory.

    Carries the chain of scopes from the root down to ``path`` so a
    recursive walk can narrow it one directory at a time instead of
    re-evaluating the whole rule set for every entry.
    """

    def __init__(
        self,
        rule_set: IgnoreRuleSet,
        path: str = "",
        frames: tuple[tuple[str, tuple[IgnoreRule, ...]], ...] = (),
    ):
        self.rule_set = rule_set
        self.path = path
        self.frames = frames

    @classmethod
    def for_root(cls, rule_set: IgnoreRuleSet) -> "IgnoreContext":
        rules = rule_set.rules_for("")
        return cls(rule_set, "", (("", rules),) if rules else ())

    def child(self, name: str) -> "IgnoreContext":
        """Context for the subdirectory ``name`` of this directory."""
        child_path = join_relative(self.path, name)
        rules = self.rule_set.rules_for(child_path)
        frames = self.frames + ((child_path, rules),) if rules else self.frames
        return IgnoreContext(self.rule_set, child_path, frames)

    def is_ignored(self, name: str, kind: EntryKind) -> bool:
        """Check a direct child of this directory."""
        if name == GIT_DIR_NAME:
            return True
        path = join_relative(self.path, name)
        is_dir = kind == EntryKind.DIRECTORY
        for scope, rules in reversed(self.frames):
            scoped = path[len(scope) + 1 :] if scope else path
            for rule in reversed(rules):
                if rule.matches(scoped, is_dir):
                    return not rule.negated
        return False


class IgnoreMatcher:
    """Decides whether a relative path is excluded from syncing.

    Examples:
        >>> matcher = IgnoreMatcher.from_patterns(["build/", "*.log"])
        >>> matcher.is_ignored("build/out.bin", EntryKind.FILE)
        True
        >>> matcher.is_ignored("docs/a.txt", EntryKind.FILE)
        False
    """

    def __init__(self, rule_set: Optional[IgnoreRuleSet] = None):
        self.rule_set = rule_set if rule_set is not None else IgnoreRuleSet()

    @classmethod
    def from_directory(
        cls,
        root: Path,
        extra_patterns: Sequence[str] = (),
        use_gitignore: bool = True,
    ) -> "IgnoreMatcher":
        """Build the matcher from a local root (see IgnoreRuleSet.from_directory)."""
        rule_set = IgnoreRuleSet.from_directory(
            root, extra_patterns=extra_patterns, use_gitignore=use_gitignore
        )
        logger.debug(
            "Ignore rules: %d rule(s) in %d scope(s)",
            len(rule_set),
            len(rule_set.scopes()),
        )
        return cls(rule_set)

    @classmethod
    def from_patterns(cls, patterns: Sequence[str]) -> "IgnoreMatcher":
        rule_set = IgnoreRuleSet()
        rule_set.add_patterns(patterns)
        return cls(rule_set)

    def root(self) -> IgnoreContext:
        return IgnoreContext.for_root(self.rule_set)

    def is_ignored(self, relative_path: str, kind: EntryKind) -> bool:
        """Check a path relative to the sync root.

        A path is ignored if it matches itself or if any of its ancestor
        directories is ignored.
        """
        if not relative_path:
            return False
        *directories, name = relative_path.split("/")
        context = self.root()
        for directory in directories:
            if context.is_ignored(directory, EntryKind.DIRECTORY):
                return True
            context = context.child(directory)
        return context.is_ignored(name, kind)
