"""Shared fixtures: on-disk trees and an SFTP client backed by a local directory."""

import os
from pathlib import Path
from typing import Optional

import paramiko
import pytest

from reposync.sync import LocalEndpoint, RemoteEndpoint


def make_tree(root: Path, files: dict) -> Path:
    """Create files below ``root``.

    Keys are relative paths; a value of ``None`` creates a directory, bytes
    or str values become file contents, and an int ``n`` writes ``n`` bytes.
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, int):
            content = b"x" * content
        if isinstance(content, str):
            content = content.encode()
        path.write_bytes(content)
    return root


def tree_state(root: Path) -> dict:
    """Map every path below ``root`` to its size (``None`` for directories)."""
    state = {}
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        for name in dirnames:
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            state[rel] = None
        for name in filenames:
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            state[rel] = (Path(dirpath) / name).stat().st_size
    return state


class FakeSFTPFile:
    """The subset of paramiko.SFTPFile used by RemoteEndpoint."""

    def __init__(self, path: Path, mode: str):
        self._f = open(path, mode)

    def prefetch(self) -> None:
        pass

    def set_pipelined(self, pipelined: bool = True) -> None:
        pass

    def read(self, size: Optional[int] = None) -> bytes:
        return self._f.read(-1 if size is None else size)

    def write(self, data: bytes) -> None:
        self._f.write(data)

    def close(self) -> None:
        self._f.close()

    def __enter__(self) -> "FakeSFTPFile":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class FakeSFTPClient:
    """SFTP client serving a local directory, like a server chrooted there.

    Relative paths start at ``base`` (the "login directory"). Operations
    listed in ``fail_on`` as ``(operation, path)`` raise an error.
    """

    def __init__(self, base: Path):
        self.base = base
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _local(self, operation: str, path: str) -> Path:
        self.calls.append((operation, path))
        error = self.fail_on.get((operation, path))
        if error is not None:
            raise error
        if path in ("", "."):
            return self.base
        return self.base / path.lstrip("/")

    def lstat(self, path: str) -> paramiko.SFTPAttributes:
        local = self._local("lstat", path)
        return paramiko.SFTPAttributes.from_stat(os.lstat(local), local.name)

    def listdir_attr(self, path: str = ".") -> list[paramiko.SFTPAttributes]:
        local = self._local("listdir_attr", path)
        return [
            paramiko.SFTPAttributes.from_stat(os.lstat(local / name), name)
            for name in sorted(os.listdir(local))
        ]

    def open(self, path: str, mode: str = "r") -> FakeSFTPFile:
        return FakeSFTPFile(self._local("open", path), mode)

    def mkdir(self, path: str, mode: int = 0o777) -> None:
        os.mkdir(self._local("mkdir", path))

    def rmdir(self, path: str) -> None:
        os.rmdir(self._local("rmdir", path))

    def remove(self, path: str) -> None:
        os.remove(self._local("remove", path))

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_git_config(monkeypatch, tmp_path_factory) -> Path:
    """Keep the user's git config and global excludes out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    return home


@pytest.fixture
def local_root(tmp_path: Path) -> Path:
    root = tmp_path / "local"
    root.mkdir()
    return root


@pytest.fixture
def server_home(tmp_path: Path) -> Path:
    """Login directory of the fake SFTP server."""
    home = tmp_path / "server"
    home.mkdir()
    return home


@pytest.fixture
def sftp(server_home: Path) -> FakeSFTPClient:
    return FakeSFTPClient(server_home)


@pytest.fixture
def local(local_root: Path) -> LocalEndpoint:
    return LocalEndpoint(local_root, label="local")


@pytest.fixture
def remote(sftp: FakeSFTPClient) -> RemoteEndpoint:
    return RemoteEndpoint(sftp, "project", label="devbox:project")


@pytest.fixture
def remote_root(server_home: Path) -> Path:
    """Directory on disk that backs the ``remote`` endpoint."""
    return server_home / "project"
