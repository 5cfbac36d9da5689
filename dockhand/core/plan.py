"""Deployment plan: an ordered, immutable sequence of gated stages.

The plan owns no behaviour beyond a single query, ``eligible_stages``,
which filters stages by gate. Ordering is the declared order; the
orchestrator never reorders or parallelises stages.

``build_plan`` turns a ``PipelineConfig`` into the canonical pipeline::

    build -> verify -> publish -> deploy-staging -> deploy-production
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dockhand.core.collaborators import CredentialProvider
from dockhand.core.errors import PlanError
from dockhand.core.gates import (
    AllOf,
    AnyOf,
    BranchGate,
    EventGate,
    StageGate,
    environment_gate,
    evaluate_gate,
)
from dockhand.models.artifacts import ArtifactReference
from dockhand.models.config import PipelineConfig
from dockhand.models.context import EventKind, TriggerContext
from dockhand.models.hosts import CredentialHandle, EnvironmentLabel, TargetHost


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class BuildAction(BaseModel):
    """Produce the run artifact through the build collaborator."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["build"] = "build"
    source_ref: str = "."


class CheckAction(BaseModel):
    """Run tests and scans against the run artifact."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["check"] = "check"
    best_effort: bool = False


class PushAction(BaseModel):
    """Publish the run artifact to its registry."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["push"] = "push"
    credential: CredentialHandle = Field(repr=False, exclude=True)


class DeployAction(BaseModel):
    """Replace the running container on one target host."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["deploy"] = "deploy"
    target: TargetHost
    container_name: str
    port_mapping: dict[int, int] = {}
    prune: bool = True
    prepare_host: bool = False
    install_runtime: bool = False


StageAction = Union[BuildAction, CheckAction, PushAction, DeployAction]


class Stage(BaseModel):
    """One gated unit of pipeline work."""

    model_config = ConfigDict(frozen=True)

    name: str
    gate: Any  # StageGate; checked structurally below
    action: StageAction = Field(discriminator="kind")

    @field_validator("gate")
    @classmethod
    def _gate_has_evaluate(cls, value: Any) -> Any:
        if not isinstance(value, StageGate):
            raise ValueError("gate must provide evaluate(context) -> bool")
        return value


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class DeploymentPlan:
    """Ordered sequence of stages for one pipeline.

    Parameters
    ----------
    stages:
        Stages in execution order. Names must be unique and non-empty.
    artifact:
        The artifact deployed when no build stage runs in a given trigger.
    """

    def __init__(
        self, stages: Iterable[Stage], artifact: ArtifactReference
    ) -> None:
        self._stages: tuple[Stage, ...] = tuple(stages)
        self.artifact = artifact
        self._validate()

    def _validate(self) -> None:
        seen: set[str] = set()
        for stage in self._stages:
            if not stage.name.strip():
                raise PlanError("Stage names must not be empty")
            if stage.name in seen:
                raise PlanError(f"Duplicate stage name: {stage.name!r}")
            seen.add(stage.name)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self._stages]

    def eligible_stages(self, context: TriggerContext) -> list[Stage]:
        """Stages whose gate accepts *context*, in declared order.

        Pure: evaluates gates only, touches no host. Raises
        ``GateEvaluationError`` if a gate cannot be evaluated.
        """
        return [
            stage
            for stage in self._stages
            if evaluate_gate(stage.gate, context, stage_name=stage.name)
        ]

    def needs(self, action_type: type[BaseModel]) -> bool:
        """Whether any stage carries an action of *action_type*."""
        return any(isinstance(s.action, action_type) for s in self._stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"<DeploymentPlan stages={self.stage_names!r} artifact={self.artifact.image_ref!r}>"


# ---------------------------------------------------------------------------
# Canonical pipeline
# ---------------------------------------------------------------------------


def build_plan(config: PipelineConfig, credentials: CredentialProvider) -> DeploymentPlan:
    """Build the canonical pipeline for *config*.

    Build and verify run for any event on a trigger branch and for manual
    dispatches. Publish runs for pushes to a trigger branch and for manual
    dispatches, never for pull requests. Each configured environment gets a
    deploy stage gated by ``environment_gate``. Credentials are resolved
    here, so a missing secret fails plan construction rather than a stage.
    """
    on_trigger = AnyOf(
        BranchGate(config.trigger_branches),
        EventGate({EventKind.MANUAL}),
    )
    on_publish = AnyOf(
        AllOf(BranchGate(config.trigger_branches), EventGate({EventKind.PUSH})),
        EventGate({EventKind.MANUAL}),
    )

    registry_credential = credentials.resolve(config.registry_credential_ref)
    if config.registry_username:
        registry_credential = registry_credential.model_copy(
            update={"username": config.registry_username}
        )

    stages: list[Stage] = [
        Stage(name="build", gate=on_trigger, action=BuildAction(source_ref=config.source_ref)),
        Stage(
            name="verify",
            gate=on_trigger,
            action=CheckAction(best_effort=config.best_effort_checks),
        ),
        Stage(name="publish", gate=on_publish, action=PushAction(credential=registry_credential)),
    ]

    # Staging before production regardless of declaration order.
    for label in (EnvironmentLabel.STAGING, EnvironmentLabel.PRODUCTION):
        env = config.environment(label)
        if env is None:
            continue
        target = TargetHost(
            address=env.host_address,
            environment_label=env.label,
            credential=credentials.resolve(env.credential_ref),
            username=env.username,
            port=env.ssh_port,
        )
        stages.append(
            Stage(
                name=f"deploy-{label.value}",
                gate=environment_gate(label, config.release_branches),
                action=DeployAction(
                    target=target,
                    container_name=config.effective_container_name,
                    port_mapping=dict(env.port_mapping),
                    prune=config.prune_after_deploy,
                    prepare_host=config.prepare_host,
                    install_runtime=config.install_runtime,
                ),
            )
        )

    return DeploymentPlan(stages, artifact=config.artifact)
