"""SSH host resolution and SFTP session handling."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

import paramiko

from .exceptions import RemoteConnectionError
from .sync.endpoints import RemoteEndpoint

logger = logging.getLogger(__name__)

DEFAULT_SSH_CONFIG = Path.home() / ".ssh" / "config"
DEFAULT_SSH_PORT = 22
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class RemoteSpec:
    """A ``HOST:DIR`` remote location.

    ``directory`` is relative to the login directory unless it starts
    with a slash; an empty directory means the login directory itself.
    """

    host: str
    directory: str = ""

    @classmethod
    def parse(cls, value: str) -> "RemoteSpec":
        """Parse ``HOST:DIR``.

        A leading ``~/`` is dropped (SFTP paths already start at the login
        directory) and trailing slashes are stripped.

        Raises:
            ValueError: If the value has no ``:`` or the host is empty

        Examples:
            >>> RemoteSpec.parse("devbox:~/src/project/")
            RemoteSpec(host='devbox', directory='src/project')
        """
        host, sep, directory = value.partition(":")
        if not sep:
            raise ValueError(f"Invalid remote {value!r}: expected HOST:DIR")
        host = host.strip()
        if not host:
            raise ValueError(f"Invalid remote {value!r}: host is empty")

        directory = directory.strip()
        if directory == "~":
            directory = ""
        elif directory.startswith("~/"):
            directory = directory[2:]
        if directory != "/":
            directory = directory.rstrip("/")
        return cls(host=host, directory=directory)

    def __str__(self) -> str:
        return f"{self.host}:{self.directory}"


@dataclass
class HostConfig:
    """Connection parameters for one host after ``~/.ssh/config`` lookup."""

    hostname: str
    port: int = DEFAULT_SSH_PORT
    user: Optional[str] = None
    identity_files: list[str] = field(default_factory=list)


def resolve_host(alias: str, config_path: Optional[Path] = None) -> HostConfig:
    """Resolve a host alias through the OpenSSH client configuration.

    Args:
        alias: Host name or ``Host`` alias as typed by the user
        config_path: ssh_config file (defaults to ``~/.ssh/config``)

    Returns:
        HostConfig; the alias itself is used as hostname when no config
        file exists or nothing matches

    Raises:
        RemoteConnectionError: If the config file cannot be parsed
    """
    path = Path(config_path) if config_path is not None else DEFAULT_SSH_CONFIG
    if not path.is_file():
        return HostConfig(hostname=alias)

    try:
        ssh_config = paramiko.SSHConfig.from_path(str(path))
        options = ssh_config.lookup(alias)
        port = int(options.get("port", DEFAULT_SSH_PORT))
    except (OSError, ValueError, paramiko.SSHException) as e:
        raise RemoteConnectionError(f"Cannot read SSH config {path}: {e}") from e

    host = HostConfig(
        hostname=options.get("hostname", alias),
        port=port,
        user=options.get("user"),
        identity_files=[
            str(Path(p).expanduser()) for p in options.get("identityfile", [])
        ],
    )
    logger.debug("Resolved %s to %s:%d", alias, host.hostname, host.port)
    return host


@contextmanager
def open_remote(
    spec: RemoteSpec,
    config_path: Optional[Path] = None,
    timeout: float = DEFAULT_TIMEOUT,
    auto_add_host_keys: bool = False,
) -> Iterator[RemoteEndpoint]:
    """Open an SFTP session and yield a RemoteEndpoint rooted at the spec.

    Host keys are checked against the user's known_hosts file. The
    session is closed when the context exits, whatever the outcome.

    Args:
        spec: Remote location
        config_path: ssh_config file used to resolve the host
        timeout: Connect, banner and authentication timeout in seconds
        auto_add_host_keys: Accept hosts missing from known_hosts

    Raises:
        RemoteConnectionError: If the session cannot be established
    """
    host = resolve_host(spec.host, config_path)

    client = paramiko.SSHClient()
    client.load_system_host_keys()
    if auto_add_host_keys:
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    else:
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

    logger.debug("Connecting to %s", spec.host)
    try:
        client.connect(
            hostname=host.hostname,
            port=host.port,
            username=host.user,
            key_filename=host.identity_files or None,
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
        )
        sftp = client.open_sftp()
    except (OSError, paramiko.SSHException) as e:
        client.close()
        raise RemoteConnectionError(f"Cannot connect to {spec.host}: {e}") from e

    try:
        yield RemoteEndpoint(sftp, spec.directory, label=str(spec))
    finally:
        sftp.close()
        client.close()
        logger.debug("Closed connection to %s", spec.host)
