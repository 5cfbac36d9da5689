"""Unit tests for ContainerRuntimeAdapter: command grammar and preconditions."""

from __future__ import annotations

import pytest

from dockhand.core.errors import CommandError, DeployError, RemoteConnectionError
from dockhand.core.executor import RemoteExecutor
from dockhand.core.runtime import ContainerRuntimeAdapter
from dockhand.core.transport import COMMAND_NOT_FOUND

IMAGE = "docker.io/acme/notes:abc123"


@pytest.fixture
def runtime(transport) -> ContainerRuntimeAdapter:
    return ContainerRuntimeAdapter(RemoteExecutor(transport, name="staging:h"))


class TestEnsureAbsent:
    def test_stops_then_removes(self, runtime, transport):
        runtime.ensure_absent("notes")
        assert transport.calls == [["docker", "stop", "notes"], ["docker", "rm", "notes"]]
        assert runtime.diagnostics == []

    def test_absent_container_is_not_an_error(self, runtime, transport):
        transport.script("docker", "stop", exit_code=1, stderr="Error: No such container: notes")
        transport.script("docker", "rm", exit_code=1, stderr="Error: No such container: notes")
        runtime.ensure_absent("notes")
        runtime.ensure_absent("notes")
        assert runtime.calls == ["ensure_absent", "ensure_absent"]
        assert len(runtime.diagnostics) == 4
        assert all(d.startswith("best-effort:") for d in runtime.diagnostics)


class TestPullAndRun:
    def test_run_after_pull(self, runtime, transport, artifact):
        runtime.pull(artifact)
        runtime.run("notes", artifact, {8000: 8000})
        assert transport.calls == [
            ["docker", "pull", IMAGE],
            ["docker", "ps", "--format", "{{.Names}}\t{{.Ports}}"],
            ["docker", "run", "-d", "--name", "notes", "-p", "8000:8000", IMAGE],
        ]
        assert runtime.calls == ["pull", "run"]

    def test_multiple_ports_sorted(self, runtime, transport, artifact):
        runtime.pull(artifact)
        runtime.run("notes", artifact, {9000: 90, 8000: 80})
        assert transport.calls[-1] == [
            "docker", "run", "-d", "--name", "notes", "-p", "8000:80", "-p", "9000:90", IMAGE,
        ]

    def test_run_without_pull_refused(self, runtime, transport, artifact):
        with pytest.raises(DeployError, match="not pulled"):
            runtime.run("notes", artifact, {8000: 8000})
        assert transport.commands_starting("docker", "run") == []

    def test_pull_of_other_tag_does_not_count(self, runtime, artifact):
        runtime.pull(artifact.with_tag("old"))
        with pytest.raises(DeployError):
            runtime.run("notes", artifact, {8000: 8000})

    def test_failed_pull_blocks_run(self, runtime, transport, artifact):
        transport.script("docker", "pull", exit_code=1, stderr="manifest unknown")
        with pytest.raises(CommandError):
            runtime.pull(artifact)
        with pytest.raises(DeployError):
            runtime.run("notes", artifact, {8000: 8000})

    def test_begin_stage_forgets_pulls(self, runtime, artifact):
        runtime.pull(artifact)
        runtime.begin_stage()
        with pytest.raises(DeployError):
            runtime.run("notes", artifact, {8000: 8000})

    def test_port_conflict(self, runtime, transport, artifact):
        transport.script(
            "docker", "ps",
            stdout="legacy\t0.0.0.0:8000->8000/tcp, :::8000->8000/tcp\nredis\t6379/tcp\n",
        )
        runtime.pull(artifact)
        with pytest.raises(DeployError, match=r"8000 \(held by legacy\)"):
            runtime.run("notes", artifact, {8000: 8000})
        assert transport.commands_starting("docker", "run") == []

    def test_own_container_does_not_conflict(self, runtime, transport, artifact):
        transport.script("docker", "ps", stdout="notes\t0.0.0.0:8000->8000/tcp\n")
        runtime.pull(artifact)
        runtime.run("notes", artifact, {8000: 8000})
        assert len(transport.commands_starting("docker", "run")) == 1

    def test_published_ports_parsing(self, runtime, transport):
        transport.script(
            "docker", "ps",
            stdout="api\t0.0.0.0:8080->80/tcp\nworker\t\ndb\t127.0.0.1:5432->5432/tcp\n",
        )
        assert runtime.published_ports() == {8080: "api", 5432: "db"}

    def test_port_range_conflict(self, runtime, transport, artifact):
        transport.script(
            "docker", "ps",
            stdout="legacy\t0.0.0.0:7999-8001->7999-8001/tcp, :::7999-8001->7999-8001/tcp\n",
        )
        assert runtime.published_ports() == {7999: "legacy", 8000: "legacy", 8001: "legacy"}
        runtime.pull(artifact)
        with pytest.raises(DeployError, match=r"8000 \(held by legacy\)"):
            runtime.run("notes", artifact, {8000: 8000})


class TestPruneAndPrepare:
    def test_prune_failure_never_raises(self, runtime, transport):
        transport.script("docker", "system", exit_code=1, stderr="daemon busy")
        runtime.prune_unused()
        assert transport.calls == [["docker", "system", "prune", "-af"]]
        assert "daemon busy" in runtime.diagnostics[0]

    def test_prune_connection_loss_never_raises(self, runtime, transport):
        transport.script(
            "docker", "system",
            raises=RemoteConnectionError("ssh connection to staging failed: broken pipe"),
        )
        runtime.prune_unused()
        assert runtime.calls == ["prune_unused"]
        assert "broken pipe" in runtime.diagnostics[0]

    def test_prepare_host_skips_install_when_docker_present(self, runtime, transport):
        runtime.prepare_host()
        assert transport.calls == [
            ["sudo", "apt-get", "update", "-y"],
            ["docker", "version"],
        ]

    def test_prepare_host_installs_missing_runtime(self, transport):
        runtime = ContainerRuntimeAdapter(RemoteExecutor(transport), login_user="deploy")
        transport.script("docker", "version", exit_code=COMMAND_NOT_FOUND)
        runtime.prepare_host(update_packages=False)
        assert transport.calls[1:] == [
            ["sudo", "apt-get", "install", "-y", "docker.io"],
            ["sudo", "systemctl", "enable", "docker"],
            ["sudo", "systemctl", "start", "docker"],
            ["sudo", "usermod", "-aG", "docker", "deploy"],
        ]

    def test_prepare_host_without_install(self, runtime, transport):
        transport.script("docker", "version", exit_code=COMMAND_NOT_FOUND)
        runtime.prepare_host(install_runtime=False)
        assert transport.commands_starting("sudo", "apt-get", "install") == []
        assert "install disabled" in runtime.diagnostics[-1]

    def test_custom_docker_binary(self, transport, artifact):
        runtime = ContainerRuntimeAdapter(RemoteExecutor(transport), docker_binary="podman")
        runtime.pull(artifact)
        assert transport.calls == [["podman", "pull", IMAGE]]

