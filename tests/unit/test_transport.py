"""Unit tests for the ssh and local transports (subprocess is faked)."""

from __future__ import annotations

import stat
import subprocess
from pathlib import Path

import pytest

from dockhand.config import DockhandSettings
from dockhand.core.errors import RemoteConnectionError
from dockhand.core.executor import RemoteExecutor
from dockhand.core.transport import (
    COMMAND_NOT_FOUND,
    LocalTransport,
    SshTransport,
    Transport,
)
from dockhand.models.commands import RemoteCommand


class _FakeRun:
    """Stands in for ``subprocess.run`` and records every invocation."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: list[dict] = []
        self.key_snapshots: list[tuple[str, int]] = []
        self.raises: BaseException | None = None

    def __call__(self, argv, **kwargs):
        self.calls.append({"argv": list(argv), **kwargs})
        if "-i" in argv:
            key = Path(argv[argv.index("-i") + 1])
            self.key_snapshots.append((key.read_text(), stat.S_IMODE(key.stat().st_mode)))
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def fake_run(monkeypatch) -> _FakeRun:
    fake = _FakeRun()
    monkeypatch.setattr("dockhand.core.transport.subprocess.run", fake)
    return fake


@pytest.fixture
def ssh_settings() -> DockhandSettings:
    return DockhandSettings(_env_file=None, ssh_connect_timeout=7)


class TestSshArgv:
    def test_argv_shape(self, staging_host, ssh_settings):
        argv = SshTransport(staging_host, ssh_settings).build_argv(
            ["docker", "run", "--name", "my app"]
        )
        assert argv[0] == "ssh"
        assert "BatchMode=yes" in argv
        assert "ConnectTimeout=7" in argv
        assert "StrictHostKeyChecking=yes" in argv
        assert argv[argv.index("-p") + 1] == "22"
        assert argv[-3:] == ["ubuntu@staging.example.com", "--", "docker run --name 'my app'"]

    def test_accept_new_host_keys(self, staging_host):
        settings = DockhandSettings(_env_file=None, strict_host_key_checking=False)
        argv = SshTransport(staging_host, settings).build_argv(["true"])
        assert "StrictHostKeyChecking=accept-new" in argv

    def test_known_hosts_file(self, staging_host, tmp_path):
        settings = DockhandSettings(_env_file=None, known_hosts_file=tmp_path / "known_hosts")
        argv = SshTransport(staging_host, settings).build_argv(["true"])
        assert f"UserKnownHostsFile={tmp_path / 'known_hosts'}" in argv

    def test_metacharacters_are_quoted(self, staging_host, ssh_settings):
        argv = SshTransport(staging_host, ssh_settings).build_argv(["echo", "a; rm -rf /"])
        assert argv[-1] == "echo 'a; rm -rf /'"

    def test_satisfies_protocol(self, staging_host):
        assert isinstance(SshTransport(staging_host), Transport)
        assert isinstance(LocalTransport(), Transport)


class TestSshSession:
    def test_open_writes_private_key_and_close_removes_it(
        self, staging_host, ssh_settings, fake_run
    ):
        transport = SshTransport(staging_host, ssh_settings)
        transport.open()
        content, mode = fake_run.key_snapshots[0]
        assert "staging-secret" in content
        assert mode == 0o600
        key_path = Path(fake_run.calls[0]["argv"][fake_run.calls[0]["argv"].index("-i") + 1])
        assert key_path.exists()

        transport.close()
        assert not key_path.exists()
        transport.close()

    def test_key_never_on_command_line(self, staging_host, ssh_settings, fake_run):
        transport = SshTransport(staging_host, ssh_settings)
        transport.open()
        transport.run(["docker", "ps"])
        transport.close()
        for call in fake_run.calls:
            assert not any("staging-secret" in part for part in call["argv"])

    def test_open_failure_raises_and_cleans_up(self, staging_host, ssh_settings, fake_run):
        fake_run.returncode = 255
        fake_run.stderr = "ssh: connect to host staging.example.com port 22: Connection refused\n"
        transport = SshTransport(staging_host, ssh_settings)
        with pytest.raises(RemoteConnectionError, match="Connection refused"):
            transport.open()
        key_path = Path(fake_run.calls[0]["argv"][fake_run.calls[0]["argv"].index("-i") + 1])
        assert not key_path.exists()

    def _key_path(self, fake_run) -> Path:
        argv = fake_run.calls[0]["argv"]
        return Path(argv[argv.index("-i") + 1])

    def test_open_with_missing_client_removes_key(self, staging_host, ssh_settings, fake_run):
        fake_run.raises = FileNotFoundError("ssh")
        transport = SshTransport(staging_host, ssh_settings)
        with pytest.raises(RemoteConnectionError, match="not found"):
            transport.open()
        assert not self._key_path(fake_run).exists()

    def test_open_timeout_is_connection_error_and_removes_key(
        self, staging_host, ssh_settings, fake_run
    ):
        fake_run.raises = subprocess.TimeoutExpired(cmd="ssh", timeout=14)
        transport = SshTransport(staging_host, ssh_settings)
        with pytest.raises(RemoteConnectionError, match="exceeded"):
            transport.open()
        assert not self._key_path(fake_run).exists()

    def test_executor_leaves_no_key_when_session_fails(
        self, staging_host, ssh_settings, fake_run
    ):
        fake_run.raises = FileNotFoundError("ssh")
        with pytest.raises(ConnectionError):
            with RemoteExecutor.for_host(staging_host, ssh_settings) as executor:
                executor.execute(RemoteCommand(program="docker", args=("ps",)))
        assert not executor.connected
        assert not self._key_path(fake_run).exists()

    def test_commands_run_in_their_own_session(self, staging_host, ssh_settings, fake_run):
        SshTransport(staging_host, ssh_settings).run(["docker", "pull", "acme/notes"])
        assert fake_run.calls[0]["start_new_session"] is True

    def test_run_exit_255_is_connection_error(self, staging_host, ssh_settings, fake_run):
        transport = SshTransport(staging_host, ssh_settings)
        fake_run.returncode = 255
        with pytest.raises(RemoteConnectionError):
            transport.run(["docker", "ps"])

    def test_run_returns_raw_output(self, staging_host, ssh_settings, fake_run):
        fake_run.returncode = 1
        fake_run.stderr = "Error: No such container: web"
        code, _, stderr = SshTransport(staging_host, ssh_settings).run(["docker", "stop", "web"])
        assert code == 1
        assert "No such container" in stderr

    def test_timeout_becomes_timeout_error(self, staging_host, ssh_settings, fake_run):
        fake_run.raises = subprocess.TimeoutExpired(cmd="ssh", timeout=3)
        with pytest.raises(TimeoutError):
            SshTransport(staging_host, ssh_settings).run(["sleep", "10"], timeout=3)

    def test_missing_ssh_client(self, staging_host, ssh_settings, fake_run):
        fake_run.raises = FileNotFoundError("ssh")
        with pytest.raises(RemoteConnectionError, match="not found"):
            SshTransport(staging_host, ssh_settings).run(["true"])


class TestLocalTransport:
    def test_run_passes_stdin_and_timeout(self, fake_run):
        fake_run.stdout = "ok"
        code, stdout, _ = LocalTransport().run(["docker", "login"], timeout=5, stdin="token")
        assert (code, stdout) == (0, "ok")
        assert fake_run.calls[0]["input"] == "token"
        assert fake_run.calls[0]["timeout"] == 5
        assert fake_run.calls[0]["start_new_session"] is True

    def test_missing_binary_is_127(self, fake_run):
        fake_run.raises = FileNotFoundError("docker")
        code, _, stderr = LocalTransport().run(["docker", "ps"])
        assert code == COMMAND_NOT_FOUND
        assert "command not found" in stderr

    def test_timeout(self, fake_run):
        fake_run.raises = subprocess.TimeoutExpired(cmd="docker", timeout=1)
        with pytest.raises(TimeoutError):
            LocalTransport().run(["docker", "build", "."], timeout=1)
