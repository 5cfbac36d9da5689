"""Docker CLI collaborators: build, verify and push on the local machine.

These are the bundled implementations of the ``Builder``, ``CheckRunner``
and ``RegistryPusher`` Protocols. Each runs structured commands through a
local ``RemoteExecutor`` so build output, timeouts and failures are handled
the same way as remote commands.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from dockhand.core.errors import CommandError
from dockhand.core.executor import RemoteExecutor
from dockhand.models.artifacts import ArtifactReference
from dockhand.models.commands import RemoteCommand
from dockhand.models.config import CheckCommand
from dockhand.models.hosts import CredentialHandle
from dockhand.models.reports import CheckReport

logger = logging.getLogger(__name__)


class DockerCliBuilder:
    """Builds the target image with ``docker build``.

    Parameters
    ----------
    executor:
        Local executor running the docker client.
    target:
        The reference the built image is tagged with.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        target: ArtifactReference,
        *,
        docker_binary: str = "docker",
    ) -> None:
        self.executor = executor
        self.target = target
        self.docker_binary = docker_binary

    def build(self, source_ref: str) -> ArtifactReference:
        self.executor.execute(
            RemoteCommand(
                program=self.docker_binary,
                args=("build", "--tag", self.target.image_ref, source_ref),
                description="build image",
            )
        )
        logger.info("Built %s from %s", self.target.image_ref, source_ref)
        return self.target


class DockerCheckRunner:
    """Runs each configured check inside a throwaway container.

    The report passes when every required check exits zero. Failing
    best-effort checks are listed in the findings but do not flip
    ``passed``.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        checks: Sequence[CheckCommand],
        *,
        docker_binary: str = "docker",
    ) -> None:
        self.executor = executor
        self.checks = list(checks)
        self.docker_binary = docker_binary

    def run_checks(self, artifact: ArtifactReference) -> CheckReport:
        passed = True
        findings: list[str] = []
        for check in self.checks:
            command = RemoteCommand(
                program=self.docker_binary,
                args=("run", "--rm", artifact.image_ref, *check.command),
                best_effort=check.best_effort,
                description=check.name,
            )
            try:
                result = self.executor.execute(command)
            except CommandError as exc:
                if exc.result is None:
                    raise
                result = exc.result
            if result.ok:
                findings.append(f"{check.name}: passed")
                continue
            label = "best-effort " if check.best_effort else ""
            findings.append(f"{label}{check.name}: {result.summary()}")
            if not check.best_effort:
                passed = False
        return CheckReport(passed=passed, findings=tuple(findings))


class DockerRegistryPusher:
    """Logs in with ``--password-stdin`` and pushes the image."""

    def __init__(self, executor: RemoteExecutor, *, docker_binary: str = "docker") -> None:
        self.executor = executor
        self.docker_binary = docker_binary

    def push(self, artifact: ArtifactReference, credential: CredentialHandle) -> bool:
        login_args: tuple[str, ...] = ("login", artifact.registry, "--password-stdin")
        if credential.username:
            login_args += ("--username", credential.username)
        try:
            self.executor.execute(
                RemoteCommand(program=self.docker_binary, args=login_args, description="registry login"),
                stdin=credential.secret.get_secret_value(),
            )
            self.executor.execute(
                RemoteCommand(
                    program=self.docker_binary,
                    args=("push", artifact.image_ref),
                    description="push image",
                )
            )
        except CommandError as exc:
            logger.error("Push of %s failed: %s", artifact.image_ref, exc)
            return False
        return True
