"""Execution of sync plans against a destination endpoint."""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, cast

from ..exceptions import ExecutionAborted, SyncCancelled, TransportError
from .modes import ExecutionMode
from .plan import Action, ActionKind, SyncPlan

if TYPE_CHECKING:
    from .endpoints import Endpoint

logger = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    """Outcome of one action in the log."""

    PERFORMED = "performed"
    """Action was applied to the destination"""

    PLANNED = "planned"
    """Dry run: action would be performed"""

    FAILED = "failed"
    """Action was attempted and failed"""


@dataclass
class LogEntry:
    """One action together with what happened to it."""

    action: Action
    status: ActionStatus
    error: Optional[str] = None

    def describe(self) -> str:
        if self.status == ActionStatus.PLANNED:
            return f"would {self.action.describe()}"
        if self.status == ActionStatus.FAILED:
            return f"failed to {self.action.describe()}: {self.error}"
        return self.action.describe()

    def to_dict(self) -> dict:
        data = self.action.to_dict()
        data["status"] = self.status.value
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ActionLog:
    """Ordered record of the actions an execution performed or planned."""

    mode: ExecutionMode
    planned_total: int = 0
    entries: list[LogEntry] = field(default_factory=list)

    def append(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> list[Action]:
        """The logged actions, without their status."""
        return [entry.action for entry in self.entries]

    @property
    def performed(self) -> list[LogEntry]:
        return [e for e in self.entries if e.status == ActionStatus.PERFORMED]

    @property
    def failed(self) -> list[LogEntry]:
        return [e for e in self.entries if e.status == ActionStatus.FAILED]

    @property
    def completed(self) -> bool:
        """True if every planned action was performed (or previewed)."""
        return not self.failed and len(self.entries) == self.planned_total

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "planned": self.planned_total,
            "completed": self.completed,
            "actions": [entry.to_dict() for entry in self.entries],
        }


def _batches(actions: list[Action]) -> list[list[Action]]:
    """Split actions into groups that may run concurrently.

    Directory actions are barriers and always form a batch of their own;
    consecutive file actions between two barriers share a batch.
    """
    batches: list[list[Action]] = []
    current: list[Action] = []
    for action in actions:
        if action.kind.is_directory_action:
            if current:
                batches.append(current)
                current = []
            batches.append([action])
        else:
            current.append(action)
    if current:
        batches.append(current)
    return batches


class Executor:
    """Applies (or previews) a SyncPlan against a destination endpoint.

    Execution is fail-fast: the first failing action stops the run and
    ``ExecutionAborted`` is raised with the partial log. There are no
    retries. Cancellation is only honored between actions, never in the
    middle of one, so the destination always reflects a consistent prefix
    of the plan.
    """

    def __init__(
        self,
        source: "Optional[Endpoint]" = None,
        max_workers: int = 1,
        on_action: Optional[Callable[[LogEntry], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize executor.

        Args:
            source: Endpoint file contents are read from (required for
                PUT_FILE actions in apply mode)
            max_workers: Number of file actions run concurrently between
                directory actions (1 for strictly sequential execution)
            on_action: Called with every log entry as it is produced
            cancel_event: When set, execution stops before the next action
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.source = source
        self.max_workers = max_workers
        self.on_action = on_action
        self.cancel_event = cancel_event

    def execute(
        self,
        plan: SyncPlan,
        destination: "Endpoint",
        mode: ExecutionMode = ExecutionMode.APPLY,
    ) -> ActionLog:
        """Execute a plan.

        Args:
            plan: Plan to execute
            destination: Endpoint the actions are applied to
            mode: APPLY to perform the actions, DRY to only log them

        Returns:
            ActionLog of the run

        Raises:
            ExecutionAborted: If an action fails (apply mode only)
            SyncCancelled: If the cancel event was set
        """
        log = ActionLog(mode=mode, planned_total=len(plan.actions))

        if mode == ExecutionMode.DRY:
            for action in plan.actions:
                self._record(log, LogEntry(action, ActionStatus.PLANNED))
            return log

        needs_source = any(a.kind == ActionKind.PUT_FILE for a in plan.actions)
        if needs_source and self.source is None:
            raise ValueError("A source endpoint is required to put files")

        if self.max_workers == 1:
            for action in plan.actions:
                self._check_cancelled(log)
                self._execute_single(action, destination, log)
        else:
            for batch in _batches(plan.actions):
                self._check_cancelled(log)
                if len(batch) == 1:
                    self._execute_single(batch[0], destination, log)
                else:
                    self._execute_parallel(batch, destination, log)

        logger.debug("Executed %d action(s)", len(log.performed))
        return log

    def _record(self, log: ActionLog, entry: LogEntry) -> None:
        log.append(entry)
        if self.on_action is not None:
            self.on_action(entry)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _check_cancelled(self, log: ActionLog) -> None:
        if self._cancelled():
            logger.warning("Sync cancelled after %d action(s)", len(log.entries))
            raise SyncCancelled(log)

    def _apply(self, action: Action, destination: "Endpoint") -> None:
        start = time.time()
        if action.kind == ActionKind.MKDIR:
            destination.make_directory(action.path)
        elif action.kind == ActionKind.PUT_FILE:
            source = cast("Endpoint", self.source)
            with source.read_file(action.path) as stream:
                destination.write_file(action.path, stream, action.size or 0)
        elif action.kind == ActionKind.RM_FILE:
            destination.remove_file(action.path)
        elif action.kind == ActionKind.RM_DIR:
            destination.remove_directory(action.path)
        logger.debug("%s took %.2fs", action.describe(), time.time() - start)

    def _fail(self, log: ActionLog, action: Action, error: TransportError) -> None:
        logger.error("Failed to %s: %s", action.describe(), error)
        self._record(log, LogEntry(action, ActionStatus.FAILED, str(error)))
        raise ExecutionAborted(log, action, error) from error

    def _execute_single(self, action: Action, destination: "Endpoint", log: ActionLog) -> None:
        try:
            self._apply(action, destination)
        except TransportError as e:
            self._fail(log, action, e)
        logger.info("%s", action.describe())
        self._record(log, LogEntry(action, ActionStatus.PERFORMED))

    def _execute_parallel(
        self, batch: list[Action], destination: "Endpoint", log: ActionLog
    ) -> None:
        """Run a batch of file actions concurrently.

        On the first failure no new action is started; actions already
        running are allowed to finish and are logged before aborting.
        """
        stop = threading.Event()

        def run(action: Action) -> bool:
            if stop.is_set() or self._cancelled():
                return False
            try:
                self._apply(action, destination)
            except TransportError:
                stop.set()
                raise
            return True

        logger.debug(
            "Executing %d file action(s) with %d workers", len(batch), self.max_workers
        )
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: list[Future] = [pool.submit(run, action) for action in batch]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            if not_done:
                for future in not_done:
                    future.cancel()
                wait(not_done)

        first_failure: Optional[tuple[Action, TransportError]] = None
        for action, future in zip(batch, futures):
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                if not isinstance(error, TransportError):
                    raise error
                logger.error("Failed to %s: %s", action.describe(), error)
                self._record(log, LogEntry(action, ActionStatus.FAILED, str(error)))
                if first_failure is None:
                    first_failure = (action, error)
            elif future.result():
                logger.info("%s", action.describe())
                self._record(log, LogEntry(action, ActionStatus.PERFORMED))

        if first_failure is not None:
            action, error = first_failure
            raise ExecutionAborted(log, action, error) from error
        self._check_cancelled(log)
