"""CLI interface for git-repo-sync."""

import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import click

from . import __version__
from .config import load_config
from .exceptions import (
    ExecutionAborted,
    RepoSyncError,
    SyncCancelled,
)
from .output import OutputFormatter
from .ssh import RemoteSpec, open_remote
from .sync import (
    IgnoreMatcher,
    LocalEndpoint,
    LogEntry,
    SyncDirection,
    SyncEngine,
    SyncResult,
)
from .utils import format_size

logger = logging.getLogger(__name__)


def _parse_remote(ctx: Any, param: Any, value: str) -> RemoteSpec:
    try:
        return RemoteSpec.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


@contextmanager
def _cancel_on_sigint(cancel_event: threading.Event, out: OutputFormatter) -> Iterator[None]:
    """Turn the first Ctrl-C into a request to stop between two actions.

    A second Ctrl-C interrupts immediately.
    """

    def handler(signum: int, frame: Any) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        cancel_event.set()
        out.warning("Stopping after the current action (Ctrl-C again to abort)...")

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@click.group()
@click.option(
    "--local-dir",
    "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Local directory to sync",
)
@click.option("--dry", is_flag=True, help="Show what would be done without doing it")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show unchanged entries and a summary, and enable debug logging",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output the action log in JSON format")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel workers for file transfers (default: 1)",
)
@click.option(
    "--exclude",
    "-e",
    multiple=True,
    help="Extra gitignore-style pattern, anchored at the local root (repeatable)",
)
@click.option(
    "--no-gitignore",
    is_flag=True,
    help="Do not read .gitignore files or .git/info/exclude",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Fail on file/directory conflicts instead of replacing the destination",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ~/.config/git-repo-sync/config.json)",
)
@click.version_option(version=__version__, prog_name="git-repo-sync")
@click.pass_context
def main(
    ctx: Any,
    local_dir: Path,
    dry: bool,
    verbose: bool,
    quiet: bool,
    json: bool,
    workers: Optional[int],
    exclude: tuple[str, ...],
    no_gitignore: bool,
    strict: bool,
    config_path: Optional[Path],
) -> None:
    """git-repo-sync - Sync a git working tree with a remote directory over SFTP.

    Files and directories excluded by .gitignore rules of the local tree are
    skipped on both sides, and never deleted on the destination. Changes
    are detected by file size only.

    Examples:
        git-repo-sync up devbox:src/project        # local -> remote
        git-repo-sync --dry down devbox:src/project  # preview remote -> local
        git-repo-sync -e '*.log' up devbox:~/work    # extra exclusion
    """
    ctx.ensure_object(dict)
    out = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["out"] = out
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("reposync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    try:
        config = load_config(config_path)
    except RepoSyncError as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(1)

    # Command line flags override the config file
    ctx.obj["local_dir"] = local_dir
    ctx.obj["dry_run"] = dry
    ctx.obj["workers"] = workers if workers is not None else config.workers
    ctx.obj["exclude"] = [*config.exclude, *exclude]
    ctx.obj["use_gitignore"] = config.gitignore and not no_gitignore
    ctx.obj["strict"] = strict or config.strict


@main.command()
@click.argument("remote", metavar="HOST:DIR", callback=_parse_remote)
@click.pass_context
def up(ctx: Any, remote: RemoteSpec) -> None:
    """Update the remote directory from the local tree."""
    _run_sync(ctx, SyncDirection.UP, remote)


@main.command()
@click.argument("remote", metavar="HOST:DIR", callback=_parse_remote)
@click.pass_context
def down(ctx: Any, remote: RemoteSpec) -> None:
    """Update the local tree from the remote directory."""
    _run_sync(ctx, SyncDirection.DOWN, remote)


def _run_sync(ctx: Any, direction: SyncDirection, remote: RemoteSpec) -> None:
    out: OutputFormatter = ctx.obj["out"]
    verbose: bool = ctx.obj["verbose"]
    dry_run: bool = ctx.obj["dry_run"]
    local_dir: Path = ctx.obj["local_dir"]

    labels = {"local": "local", "remote": str(remote)}
    out.info(
        f"Syncing {labels[direction.source_name]} -> "
        f"{labels[direction.destination_name]}"
    )
    if dry_run:
        out.info("Dry run: No changes will be made")

    def on_action(entry: LogEntry) -> None:
        out.print(entry.describe())

    cancel_event = threading.Event()
    try:
        # Rules come from the local tree only, before anything remote happens
        matcher = IgnoreMatcher.from_directory(
            local_dir,
            extra_patterns=ctx.obj["exclude"],
            use_gitignore=ctx.obj["use_gitignore"],
        )
        local = LocalEndpoint(local_dir, label="local")

        with open_remote(remote) as remote_endpoint:
            engine = SyncEngine(
                local,
                remote_endpoint,
                matcher,
                output=out,
                max_workers=ctx.obj["workers"],
                replace_conflicts=not ctx.obj["strict"],
            )
            with _cancel_on_sigint(cancel_event, out):
                result = engine.run(
                    direction,
                    dry_run=dry_run,
                    on_action=on_action,
                    cancel_event=cancel_event,
                )

        _display_result(out, result, verbose)

    except SyncCancelled as e:
        if out.json_output:
            out.output_json(e.log.to_dict())
        out.warning(f"\nSync cancelled by user: {e}")
        ctx.exit(130)
    except ExecutionAborted as e:
        if out.json_output:
            out.output_json(e.log.to_dict())
        out.error(f"Sync failed: {e}")
        out.error(f"{len(e.log.performed)} action(s) were performed before the failure")
        ctx.exit(1)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
    except RepoSyncError as e:
        out.error(f"Error: {e}")
        ctx.exit(1)


def _display_result(out: OutputFormatter, result: SyncResult, verbose: bool) -> None:
    if out.json_output:
        out.output_json(result.to_dict())
        return

    plan = result.plan
    if verbose:
        for entry in plan.unchanged:
            out.print(f"unchanged {entry.relative_path}")
    for path in plan.retained:
        out.warning(f"Kept {path}: it contains ignored entries")
    if plan.conflicts:
        out.warning(f"Replaced {len(plan.conflicts)} conflicting entry(ies)")

    if plan.in_sync:
        out.success("Already in sync")
    elif result.dry_run:
        out.info(f"Dry run: {len(plan.actions)} action(s) would be performed")
    else:
        out.success(f"Sync complete: {len(result.log.performed)} action(s) performed")

    if verbose:
        counts = plan.counts()
        transferred = sum(a.size or 0 for a in plan.actions)
        out.print_summary(
            "Sync Summary",
            [
                ("Direction", result.direction.value),
                ("Directories created", str(counts["mkdir"])),
                ("Files put", str(counts["put"])),
                ("Files removed", str(counts["rm"])),
                ("Directories removed", str(counts["rmdir"])),
                ("Unchanged", str(len(plan.unchanged))),
                ("Bytes to transfer", format_size(transferred)),
            ],
        )


if __name__ == "__main__":
    main()
