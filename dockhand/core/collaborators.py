"""External collaborator contracts and bundled lightweight implementations.

The core does not build images, run test suites, talk to registries or
track releases itself. It calls out through these Protocols:

- ``Builder``: ``build(source_ref) -> ArtifactReference``
- ``CheckRunner``: ``run_checks(artifact) -> CheckReport``
- ``RegistryPusher``: ``push(artifact, credential) -> bool``
- ``ReleaseNotifier``: ``notify(notice) -> None`` (failures never affect a run)
- ``CredentialProvider``: ``resolve(ref) -> CredentialHandle``

Docker CLI implementations of the first three live in
``dockhand.integrations.docker_cli``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from dockhand.core.errors import PlanError
from dockhand.models.artifacts import ArtifactReference
from dockhand.models.hosts import CredentialHandle
from dockhand.models.reports import CheckReport, ReleaseNotice

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Builder(Protocol):
    def build(self, source_ref: str) -> ArtifactReference:
        ...


@runtime_checkable
class CheckRunner(Protocol):
    def run_checks(self, artifact: ArtifactReference) -> CheckReport:
        ...


@runtime_checkable
class RegistryPusher(Protocol):
    def push(self, artifact: ArtifactReference, credential: CredentialHandle) -> bool:
        ...


@runtime_checkable
class ReleaseNotifier(Protocol):
    def notify(self, notice: ReleaseNotice) -> None:
        ...


@runtime_checkable
class CredentialProvider(Protocol):
    def resolve(self, ref: str) -> CredentialHandle:
        """Return the handle for *ref*; raise ``PlanError`` if unknown."""
        ...


# ---------------------------------------------------------------------------
# Credential providers
# ---------------------------------------------------------------------------


class EnvCredentialProvider:
    """Resolves credential refs as environment variable names.

    The CI analogue: ``STAGING_SSH_PRIVATE_KEY`` or ``REGISTRY_TOKEN``
    exported as secrets into the runner's environment.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def resolve(self, ref: str) -> CredentialHandle:
        value = self._environ.get(ref)
        if value is None:
            raise PlanError(f"Credential {ref!r} is not set in the environment")
        return CredentialHandle(ref=ref, secret=SecretStr(value))


class StaticCredentialProvider:
    """Resolves refs from an in-memory mapping (tests, dry runs)."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def resolve(self, ref: str) -> CredentialHandle:
        if ref not in self._secrets:
            raise PlanError(f"Unknown credential {ref!r}")
        return CredentialHandle(ref=ref, secret=SecretStr(self._secrets[ref]))


class DryRunCredentialProvider:
    """Resolves every ref to an empty secret, for plan inspection only."""

    def resolve(self, ref: str) -> CredentialHandle:
        return CredentialHandle(ref=ref, secret=SecretStr(""))


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------


class LoggingReleaseNotifier:
    """Records releases in the log and keeps them for inspection."""

    def __init__(self) -> None:
        self.notices: list[ReleaseNotice] = []

    def notify(self, notice: ReleaseNotice) -> None:
        self.notices.append(notice)
        logger.info(
            "Release %s: %s deployed to %s (run %s)",
            notice.tag_name,
            notice.artifact.image_ref,
            notice.host,
            notice.run_id,
        )


def release_tag_name(run_number: int, run_id: str) -> str:
    """``release-<run_number>``, falling back to the run id for ad hoc runs."""
    return f"release-{run_number}" if run_number > 0 else f"release-{run_id}"
