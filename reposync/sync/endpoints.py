"""Filesystem endpoints: the local disk and a remote tree reached over SFTP.

Both implementations satisfy the ``Endpoint`` protocol, so scanning,
diffing and execution never need to know which side they talk to. All
endpoint specific failures are raised as ``TransportError``.
"""

import logging
import os
import posixpath
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    BinaryIO,
    Iterator,
    Optional,
    Protocol,
    runtime_checkable,
)

import paramiko

from ..exceptions import TransportError
from ..utils import DEFAULT_CHUNK_SIZE, join_relative
from .models import Entry, EntryKind, Snapshot

if TYPE_CHECKING:
    from .ignore import IgnoreMatcher

logger = logging.getLogger(__name__)


@runtime_checkable
class Endpoint(Protocol):
    """Operations the sync core needs from one side of a sync."""

    label: str

    def exists(self) -> bool: ...

    def ensure_root(self) -> None: ...

    def list_directory(self, path: str = "") -> list[Entry]: ...

    def list_recursive(self, matcher: "Optional[IgnoreMatcher]" = None) -> Snapshot: ...

    def stat(self, path: str) -> Optional[Entry]: ...

    def read_file(self, path: str): ...

    def write_file(self, path: str, stream: BinaryIO, size: int) -> None: ...

    def make_directory(self, path: str) -> None: ...

    def remove_directory(self, path: str) -> None: ...

    def remove_file(self, path: str) -> None: ...


def _copy_stream(source: BinaryIO, target: BinaryIO, chunk_size: int) -> int:
    """Copy ``source`` into ``target`` chunk by chunk and return bytes copied."""
    copied = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        target.write(chunk)
        copied += len(chunk)
    return copied


class _RemoteReader:
    """Read-only view of an SFTP file that raises TransportError on failure."""

    def __init__(self, f: paramiko.SFTPFile, path: str):
        self._f = f
        self.path = path

    def read(self, size: int = -1) -> bytes:
        try:
            return self._f.read(size if size >= 0 else None)
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransportError("read", self.path, e) from e


class LocalEndpoint:
    """Endpoint backed by a directory on the local disk."""

    def __init__(
        self,
        root: Path,
        label: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize local endpoint.

        Args:
            root: Root directory of the tree
            label: Display name (defaults to the root path)
            chunk_size: Chunk size used when writing files
        """
        self.root = Path(root)
        self.label = label or self.root.as_posix()
        self.chunk_size = chunk_size

    def __repr__(self) -> str:
        return f"LocalEndpoint({self.root!s})"

    def _full(self, path: str) -> Path:
        return self.root / path if path else self.root

    @contextmanager
    def _transport_errors(self, operation: str, path: str) -> Iterator[None]:
        try:
            yield
        except OSError as e:
            raise TransportError(operation, path, e) from e

    def exists(self) -> bool:
        return self.root.is_dir()

    def ensure_root(self) -> None:
        with self._transport_errors("mkdir", ""):
            self.root.mkdir(parents=True, exist_ok=True)

    def list_directory(self, path: str = "") -> list[Entry]:
        """List the direct children of a directory.

        Symlinks and special files are skipped.
        """
        entries: list[Entry] = []
        with self._transport_errors("list", path):
            with os.scandir(self._full(path)) as it:
                for item in it:
                    rel = join_relative(path, item.name)
                    if item.is_symlink():
                        logger.debug("Skipping symlink: %s", rel)
                    elif item.is_dir(follow_symlinks=False):
                        entries.append(Entry(rel, EntryKind.DIRECTORY))
                    elif item.is_file(follow_symlinks=False):
                        size = item.stat(follow_symlinks=False).st_size
                        entries.append(Entry(rel, EntryKind.FILE, size))
                    else:
                        logger.debug("Skipping special file: %s", rel)
        return entries

    def list_recursive(self, matcher: "Optional[IgnoreMatcher]" = None) -> Snapshot:
        from .scanner import scan

        return scan(self, matcher)

    def stat(self, path: str) -> Optional[Entry]:
        with self._transport_errors("stat", path):
            try:
                st = self._full(path).lstat()
            except FileNotFoundError:
                return None
        if stat.S_ISDIR(st.st_mode):
            return Entry(path, EntryKind.DIRECTORY)
        if stat.S_ISREG(st.st_mode):
            return Entry(path, EntryKind.FILE, st.st_size)
        return None

    @contextmanager
    def read_file(self, path: str) -> Iterator[BinaryIO]:
        with self._transport_errors("open", path):
            f = open(self._full(path), "rb")
        with f:
            yield f

    def write_file(self, path: str, stream: BinaryIO, size: int) -> None:
        with self._transport_errors("write", path):
            with open(self._full(path), "wb") as f:
                written = _copy_stream(stream, f, self.chunk_size)
        if written != size:
            raise TransportError(
                "write", path, ValueError(f"expected {size} bytes, wrote {written}")
            )

    def make_directory(self, path: str) -> None:
        with self._transport_errors("mkdir", path):
            self._full(path).mkdir()

    def remove_directory(self, path: str) -> None:
        # os.rmdir refuses non-empty directories
        with self._transport_errors("rmdir", path):
            self._full(path).rmdir()

    def remove_file(self, path: str) -> None:
        with self._transport_errors("remove", path):
            self._full(path).unlink()


class RemoteEndpoint:
    """Endpoint backed by an already-open SFTP session.

    The session's lifecycle (connecting, authenticating, closing) belongs
    to the caller; see ``reposync.ssh.open_remote``.

    Examples:
        >>> with open_remote(RemoteSpec.parse("devbox:src/project")) as remote:
        ...     snapshot = remote.list_recursive()
    """

    def __init__(
        self,
        sftp: paramiko.SFTPClient,
        root: str,
        label: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize remote endpoint.

        Args:
            sftp: Open SFTP client
            root: Root directory on the remote host; relative paths start
                at the login directory
            label: Display name (defaults to the root path)
            chunk_size: Chunk size used when writing files
        """
        self.sftp = sftp
        self.root = root.rstrip("/") or ("/" if root.startswith("/") else "")
        self.label = label or self.root or "."
        self.chunk_size = chunk_size

    def __repr__(self) -> str:
        return f"RemoteEndpoint({self.label})"

    def _full(self, path: str) -> str:
        if not self.root:
            return path or "."
        return posixpath.join(self.root, path) if path else self.root

    @contextmanager
    def _transport_errors(self, operation: str, path: str) -> Iterator[None]:
        try:
            yield
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransportError(operation, path, e) from e

    def exists(self) -> bool:
        entry = self._stat_full(self._full(""), "")
        return entry is not None and entry.is_dir

    def ensure_root(self) -> None:
        """Create the root directory and any missing parents."""
        if not self.root or self.exists():
            return
        current = "/" if self.root.startswith("/") else ""
        for part in self.root.strip("/").split("/"):
            current = posixpath.join(current, part) if current else part
            if self._stat_full(current, "") is None:
                with self._transport_errors("mkdir", current):
                    self.sftp.mkdir(current)

    def list_directory(self, path: str = "") -> list[Entry]:
        entries: list[Entry] = []
        with self._transport_errors("list", path):
            attributes = self.sftp.listdir_attr(self._full(path))
        for attr in attributes:
            rel = join_relative(path, attr.filename)
            mode = attr.st_mode or 0
            if stat.S_ISDIR(mode):
                entries.append(Entry(rel, EntryKind.DIRECTORY))
            elif stat.S_ISREG(mode):
                entries.append(Entry(rel, EntryKind.FILE, attr.st_size or 0))
            else:
                logger.debug("Skipping non-regular remote entry: %s", rel)
        return entries

    def list_recursive(self, matcher: "Optional[IgnoreMatcher]" = None) -> Snapshot:
        from .scanner import scan

        return scan(self, matcher)

    def _stat_full(self, full_path: str, path: str) -> Optional[Entry]:
        with self._transport_errors("stat", path):
            try:
                attr = self.sftp.lstat(full_path)
            except FileNotFoundError:
                return None
        mode = attr.st_mode or 0
        if stat.S_ISDIR(mode):
            return Entry(path, EntryKind.DIRECTORY)
        if stat.S_ISREG(mode):
            return Entry(path, EntryKind.FILE, attr.st_size or 0)
        return None

    def stat(self, path: str) -> Optional[Entry]:
        return self._stat_full(self._full(path), path)

    @contextmanager
    def read_file(self, path: str) -> Iterator[BinaryIO]:
        with self._transport_errors("open", path):
            f = self.sftp.open(self._full(path), "rb")
            f.prefetch()
        with f:
            yield _RemoteReader(f, path)

    def write_file(self, path: str, stream: BinaryIO, size: int) -> None:
        with self._transport_errors("write", path):
            with self.sftp.open(self._full(path), "wb") as f:
                f.set_pipelined(True)
                written = _copy_stream(stream, f, self.chunk_size)
        if written != size:
            raise TransportError(
                "write", path, ValueError(f"expected {size} bytes, wrote {written}")
            )

    def make_directory(self, path: str) -> None:
        with self._transport_errors("mkdir", path):
            self.sftp.mkdir(self._full(path))

    def remove_directory(self, path: str) -> None:
        with self._transport_errors("rmdir", path):
            self.sftp.rmdir(self._full(path))

    def remove_file(self, path: str) -> None:
        with self._transport_errors("remove", path):
            self.sftp.remove(self._full(path))
