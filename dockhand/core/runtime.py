"""Container runtime adapter: deployment intents as Docker CLI commands.

Each intent maps to a fixed command grammar executed through a
``RemoteExecutor``:

    ensure_absent -> docker stop NAME (best-effort); docker rm NAME (best-effort)
    pull          -> docker pull IMAGE
    run           -> docker ps (port check); docker run -d --name NAME -p H:C IMAGE
    prune_unused  -> docker system prune -af (best-effort)

``run`` enforces two preconditions: the same artifact was pulled
successfully in the current stage, and no requested host port is already
published by another container. Best-effort failures are collected in
``diagnostics`` instead of being raised.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from dockhand.core.errors import DeployError, DockhandError
from dockhand.core.executor import RemoteExecutor
from dockhand.models.artifacts import ArtifactReference
from dockhand.models.commands import CommandResult, RemoteCommand

logger = logging.getLogger(__name__)

# Matches the host side of a published port or port range in `docker ps`
# output, e.g. "0.0.0.0:8000->8000/tcp" or ":::8000-8001->8000-8001/tcp".
_PUBLISHED_PORT = re.compile(r":(\d+)(?:-(\d+))?->")

_PS_FORMAT = "{{.Names}}\t{{.Ports}}"


class ContainerRuntimeAdapter:
    """Translates deployment intents into Docker CLI invocations.

    Parameters
    ----------
    executor:
        Executor bound to the target host.
    docker_binary:
        Name or path of the docker client on the target.
    login_user:
        User added to the ``docker`` group when the runtime is installed.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        *,
        docker_binary: str = "docker",
        login_user: str = "ubuntu",
    ) -> None:
        self.executor = executor
        self.docker_binary = docker_binary
        self.login_user = login_user
        self.calls: list[str] = []
        self.diagnostics: list[str] = []
        self._pulled: set[ArtifactReference] = set()

    # ------------------------------------------------------------------
    # Stage scoping
    # ------------------------------------------------------------------

    def begin_stage(self) -> None:
        """Reset per-stage state: pulled artifacts and diagnostics."""
        self._pulled.clear()
        self.diagnostics = []

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def ensure_absent(self, container_name: str) -> None:
        """Stop and remove *container_name*; already absent is fine."""
        self.calls.append("ensure_absent")
        self._best_effort(self._docker("stop", container_name, best_effort=True))
        self._best_effort(self._docker("rm", container_name, best_effort=True))

    def pull(self, artifact: ArtifactReference) -> None:
        self.calls.append("pull")
        self.executor.execute(self._docker("pull", artifact.image_ref))
        self._pulled.add(artifact)

    def run(
        self,
        container_name: str,
        artifact: ArtifactReference,
        port_map: Mapping[int, int],
    ) -> None:
        """Start *artifact* detached as *container_name*.

        Raises
        ------
        DeployError
            If the artifact was not pulled in this stage, or a host port in
            *port_map* is already bound.
        """
        self.calls.append("run")
        if artifact not in self._pulled:
            raise DeployError(
                f"Refusing to run {artifact.image_ref}: it was not pulled in this stage"
            )

        bound = self.published_ports(exclude=container_name)
        conflicts = sorted(p for p in port_map if p in bound)
        if conflicts:
            detail = ", ".join(f"{p} (held by {bound[p]})" for p in conflicts)
            raise DeployError(f"Host port already bound: {detail}")

        args: list[str] = ["run", "-d", "--name", container_name]
        for host_port, container_port in sorted(port_map.items()):
            args += ["-p", f"{host_port}:{container_port}"]
        args.append(artifact.image_ref)
        self.executor.execute(self._docker(*args))

    def prune_unused(self) -> None:
        """Remove unused images and containers. Never fails the stage.

        A lost connection is recorded in ``diagnostics`` like any other
        failure; the container started by ``run`` is already serving.
        """
        self.calls.append("prune_unused")
        try:
            self._best_effort(self._docker("system", "prune", "-af", best_effort=True))
        except DockhandError as exc:
            logger.warning("[%s] prune skipped: %s", self.executor.name, exc)
            self.diagnostics.append(f"best-effort: prune skipped: {type(exc).__name__}: {exc}")

    def prepare_host(
        self, *, update_packages: bool = True, install_runtime: bool = True
    ) -> None:
        """Refresh package indexes and install Docker when it is missing."""
        self.calls.append("prepare_host")
        if update_packages:
            self._best_effort(
                RemoteCommand(
                    program="sudo",
                    args=("apt-get", "update", "-y"),
                    best_effort=True,
                    description="refresh package index",
                )
            )

        probe = self.executor.execute(self._docker("version", best_effort=True))
        if probe.ok:
            return
        if not install_runtime:
            self.diagnostics.append("container runtime not available and install disabled")
            return

        logger.info("[%s] installing container runtime", self.executor.name)
        for args in (
            ("apt-get", "install", "-y", "docker.io"),
            ("systemctl", "enable", "docker"),
            ("systemctl", "start", "docker"),
            ("usermod", "-aG", "docker", self.login_user),
        ):
            self.executor.execute(RemoteCommand(program="sudo", args=args))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def published_ports(self, *, exclude: str = "") -> dict[int, str]:
        """Map of host port -> container name for running containers."""
        result = self.executor.execute(self._docker("ps", "--format", _PS_FORMAT))
        ports: dict[int, str] = {}
        for line in result.stdout.splitlines():
            name, _, port_spec = line.partition("\t")
            name = name.strip()
            if not name or name == exclude:
                continue
            for match in _PUBLISHED_PORT.finditer(port_spec):
                first = int(match.group(1))
                last = int(match.group(2) or first)
                for port in range(first, last + 1):
                    ports.setdefault(port, name)
        return ports

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _docker(self, *args: str, best_effort: bool = False) -> RemoteCommand:
        return RemoteCommand(
            program=self.docker_binary, args=tuple(args), best_effort=best_effort
        )

    def _best_effort(self, command: RemoteCommand) -> CommandResult:
        result = self.executor.execute(command)
        if not result.ok:
            self.diagnostics.append(f"best-effort: {result.summary()}")
        return result
