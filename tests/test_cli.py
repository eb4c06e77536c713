"""Unit tests for the git-repo-sync CLI."""

import json
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import FakeSFTPClient, make_tree, tree_state

from reposync.cli import main
from reposync.config import CONFIG_ENV_VAR
from reposync.exceptions import RemoteConnectionError, TransportError
from reposync.sync import RemoteEndpoint


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def no_user_config(monkeypatch, tmp_path: Path):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setattr("reposync.config.DEFAULT_CONFIG_PATH", tmp_path / "none.json")


@pytest.fixture
def fake_remote(sftp: FakeSFTPClient):
    """Replace the SSH connection with the fake SFTP server."""

    @contextmanager
    def fake_open_remote(spec):
        yield RemoteEndpoint(sftp, spec.directory, label=str(spec))

    with patch("reposync.cli.open_remote", side_effect=fake_open_remote) as mock:
        yield mock


def run(runner, local_root: Path, *args):
    return runner.invoke(main, ["--local-dir", str(local_root), *args])


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "--dry" in result.output
        assert "--exclude" in result.output
        assert "up" in result.output
        assert "down" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "git-repo-sync" in result.output

    def test_remote_without_colon_is_usage_error(self, runner, local_root):
        result = run(runner, local_root, "up", "devbox")
        assert result.exit_code == 2
        assert "HOST:DIR" in result.output

    def test_invalid_workers(self, runner, local_root):
        result = run(runner, local_root, "--workers", "0", "up", "devbox:x")
        assert result.exit_code == 2


class TestSyncCommands:
    """Tests for the up and down commands."""

    def test_up(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"docs/a.txt": 5})

        result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert "Syncing local -> devbox:project" in result.output
        assert "create directory docs" in result.output
        assert "put docs/a.txt (5 B)" in result.output
        assert tree_state(remote_root) == {"docs": None, "docs/a.txt": 5}
        assert fake_remote.call_args.args[0].host == "devbox"

    def test_down(self, runner, local_root, remote_root, fake_remote):
        make_tree(remote_root, {"b.txt": 2})
        make_tree(local_root, {"stale.txt": 1})

        result = run(runner, local_root, "down", "devbox:~/project/")

        assert result.exit_code == 0, result.output
        assert "Syncing devbox:project -> local" in result.output
        assert "remove file stale.txt" in result.output
        assert tree_state(local_root) == {"b.txt": 2}

    def test_dry_run(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1})

        result = run(runner, local_root, "--dry", "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert "would put a.txt (1 B)" in result.output
        assert not remote_root.exists()

    def test_in_sync(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1})
        make_tree(remote_root, {"a.txt": 1})

        result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 0
        assert "Already in sync" in result.output

    def test_verbose_shows_unchanged(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1, "b.txt": 2})
        make_tree(remote_root, {"a.txt": 1})

        result = run(runner, local_root, "--verbose", "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert "unchanged a.txt" in result.output
        assert "Sync Summary" in result.output

    def test_exclude_option(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1, "debug.log": 9})

        result = run(runner, local_root, "-e", "*.log", "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert tree_state(remote_root) == {"a.txt": 1}

    def test_no_gitignore(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {".gitignore": "*.log\n", "debug.log": 9})

        result = run(runner, local_root, "--no-gitignore", "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert "debug.log" in tree_state(remote_root)

    def test_json_output(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1})

        result = run(runner, local_root, "--json", "--dry", "up", "devbox:project")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["mode"] == "dry"
        assert data["direction"] == "up"
        assert data["actions"][0]["path"] == "a.txt"
        assert data["actions"][0]["status"] == "planned"

    def test_config_file_applies(self, runner, local_root, remote_root, fake_remote, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"exclude": ["*.tmp"]}))
        make_tree(local_root, {"a.txt": 1, "b.tmp": 1})

        result = run(runner, local_root, "--config", str(config), "up", "devbox:project")

        assert result.exit_code == 0, result.output
        assert tree_state(remote_root) == {"a.txt": 1}


class TestErrors:
    """Tests for exit codes on failure."""

    def test_malformed_pattern(self, runner, local_root, fake_remote):
        make_tree(local_root, {".gitignore": "!\n"})

        result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 1
        assert "invalid ignore pattern" in result.output
        # rules are checked before connecting
        fake_remote.assert_not_called()

    def test_strict_conflict(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"p": 1})
        make_tree(remote_root, {"p/q": 1})

        result = run(runner, local_root, "--strict", "up", "devbox:project")

        assert result.exit_code == 1
        assert "conflict" in result.output

    def test_connection_error(self, runner, local_root):
        with patch(
            "reposync.cli.open_remote",
            side_effect=RemoteConnectionError("Cannot connect to devbox: refused"),
        ):
            result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 1
        assert "Cannot connect to devbox" in result.output

    def test_aborted_execution(self, runner, local_root, remote_root, sftp, fake_remote):
        make_tree(local_root, {"a.txt": 1, "b.txt": 1})
        remote_root.mkdir()
        sftp.fail_on[("open", "project/b.txt")] = PermissionError("denied")

        result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 1
        assert "Sync failed" in result.output
        assert "1 action(s) were performed" in result.output

    def test_cancelled(self, runner, local_root, remote_root, fake_remote):
        make_tree(local_root, {"a.txt": 1})

        with patch("reposync.cli.SyncEngine") as engine_class:
            engine_class.return_value.run.side_effect = KeyboardInterrupt
            result = run(runner, local_root, "up", "devbox:project")

        assert result.exit_code == 130

    def test_bad_config(self, runner, local_root, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"workers": "many"}))

        result = run(runner, local_root, "--config", str(config), "up", "devbox:x")

        assert result.exit_code == 1
        assert "Configuration error" in result.output


def test_transport_error_message():
    error = TransportError("put", "a/b.txt", OSError("disk full"))
    assert str(error) == "put failed for a/b.txt: disk full"
