"""Core sync engine tying scanning, diffing and execution together."""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..output import OutputFormatter
from .comparator import DiffEngine
from .executor import ActionLog, Executor, LogEntry
from .ignore import IgnoreMatcher
from .models import Snapshot
from .modes import ExecutionMode, SyncDirection
from .plan import SyncPlan
from .scanner import TreeScanner

if TYPE_CHECKING:
    from .endpoints import Endpoint

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    plan: SyncPlan
    log: ActionLog
    direction: SyncDirection

    @property
    def dry_run(self) -> bool:
        return self.log.mode == ExecutionMode.DRY

    def to_dict(self) -> dict:
        data = self.log.to_dict()
        data["direction"] = self.direction.value
        data["unchanged"] = len(self.plan.unchanged)
        data["conflicts"] = [str(c) for c in self.plan.conflicts]
        data["retained"] = list(self.plan.retained)
        return data


class SyncEngine:
    """Core sync engine that reconciles a local and a remote tree.

    The ignore matcher is always anchored to the local tree, whichever
    way the sync runs, and is applied to both sides.
    """

    def __init__(
        self,
        local: "Endpoint",
        remote: "Endpoint",
        matcher: Optional[IgnoreMatcher] = None,
        output: Optional[OutputFormatter] = None,
        max_workers: int = 1,
        replace_conflicts: bool = True,
    ):
        """Initialize sync engine.

        Args:
            local: Local endpoint
            remote: Remote endpoint
            matcher: Ignore matcher built from the local root
            output: Output formatter for displaying progress/status
            max_workers: Number of parallel workers for file actions
            replace_conflicts: Replace entries whose kind differs between
                source and destination instead of failing
        """
        self.local = local
        self.remote = remote
        self.matcher = matcher if matcher is not None else IgnoreMatcher()
        self.output = output or OutputFormatter(quiet=True)
        self.max_workers = max_workers
        self.replace_conflicts = replace_conflicts

    def endpoints(self, direction: SyncDirection) -> tuple["Endpoint", "Endpoint"]:
        """Return ``(source, destination)`` for a direction."""
        if direction.source_is_local:
            return self.local, self.remote
        return self.remote, self.local

    def scan(self, direction: SyncDirection) -> tuple[Snapshot, Snapshot]:
        """Scan source and destination with the same matcher.

        The destination root may not exist yet, in which case its snapshot
        is empty. The source root must exist.

        Raises:
            ScanError: If either tree cannot be traversed
        """
        source, destination = self.endpoints(direction)
        scanner = TreeScanner(self.matcher)

        show_progress = not (self.output.quiet or self.output.json_output)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=not show_progress,
        ) as progress:
            task = progress.add_task(f"Scanning {source.label}...", total=None)
            source_snapshot = scanner.scan(source)
            progress.update(
                task, description=f"Found {len(source_snapshot)} source entries"
            )

            task = progress.add_task(f"Scanning {destination.label}...", total=None)
            destination_snapshot = scanner.scan(destination, allow_missing_root=True)
            progress.update(
                task,
                description=f"Found {len(destination_snapshot)} destination entries",
            )

        return source_snapshot, destination_snapshot

    def plan(self, direction: SyncDirection) -> SyncPlan:
        """Scan both sides and compute the sync plan.

        Raises:
            ScanError: If either tree cannot be traversed
            ConflictError: If a kind mismatch cannot or may not be resolved
        """
        source_snapshot, destination_snapshot = self.scan(direction)
        comparator = DiffEngine(self.matcher, replace_conflicts=self.replace_conflicts)
        return comparator.diff(source_snapshot, destination_snapshot)

    def run(
        self,
        direction: SyncDirection,
        dry_run: bool = False,
        on_action: Optional[Callable[[LogEntry], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Plan and execute a sync.

        Args:
            direction: Which side is the source
            dry_run: If True, only report what would be done
            on_action: Called with every log entry as it is produced
            cancel_event: When set, execution stops before the next action

        Returns:
            SyncResult with the plan and the action log

        Raises:
            ScanError: If either tree cannot be traversed
            ConflictError: If a kind mismatch cannot or may not be resolved
            ExecutionAborted: If an action fails
            SyncCancelled: If the cancel event was set

        Examples:
            >>> engine = SyncEngine(local, remote, matcher)
            >>> result = engine.run(SyncDirection.UP, dry_run=True)
            >>> print(f"Would perform {len(result.log.entries)} action(s)")
        """
        source, destination = self.endpoints(direction)
        logger.debug(
            "Syncing %s -> %s (%s)",
            source.label,
            destination.label,
            "dry run" if dry_run else "apply",
        )
        plan = self.plan(direction)

        mode = ExecutionMode.DRY if dry_run else ExecutionMode.APPLY
        if mode == ExecutionMode.APPLY and plan.actions and not destination.exists():
            logger.info("Creating destination root %s", destination.label)
            destination.ensure_root()

        executor = Executor(
            source=source,
            max_workers=self.max_workers,
            on_action=on_action,
            cancel_event=cancel_event,
        )
        log = executor.execute(plan, destination, mode)
        return SyncResult(plan=plan, log=log, direction=direction)
