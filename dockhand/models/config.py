"""Pipeline configuration models.

Loaded from ``dockhand.toml`` by ``dockhand.config.load_pipeline_config``.
The configuration replaces workflow-level environment variables and
dispatch inputs with one immutable object passed into plan construction.
"""

from __future__ import annotations

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from dockhand.models.artifacts import DEFAULT_REGISTRY, DEFAULT_TAG, ArtifactReference
from dockhand.models.hosts import EnvironmentLabel


class CheckCommand(BaseModel):
    """A command run inside the built image by the verify stage."""

    model_config = ConfigDict(frozen=True)

    name: str
    command: list[str]
    best_effort: bool = False

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("check command must not be empty")
        return value


DEFAULT_CHECKS: list[CheckCommand] = [
    CheckCommand(name="tests", command=["python", "manage.py", "test"]),
    CheckCommand(
        name="security-scan",
        command=[
            "sh",
            "-c",
            "pip install bandit safety && bandit -r . -x tests/ && safety check",
        ],
        best_effort=True,
    ),
]


class EnvironmentConfig(BaseModel):
    """One deployment environment and the host serving it."""

    model_config = ConfigDict(frozen=True)

    label: EnvironmentLabel
    host_address: str
    credential_ref: str  # name the credential provider resolves, e.g. an env var
    port_mapping: dict[int, int] = Field(default_factory=lambda: {8000: 8000})
    username: str = "ubuntu"
    ssh_port: int = Field(default=22, ge=1, le=65535)

    @field_validator("port_mapping")
    @classmethod
    def _ports_in_range(cls, value: dict[int, int]) -> dict[int, int]:
        for host_port, container_port in value.items():
            for port in (host_port, container_port):
                if not 1 <= port <= 65535:
                    raise ValueError(f"port out of range: {port}")
        return value


class PipelineConfig(BaseModel):
    """Project-level configuration for a deployment pipeline."""

    model_config = ConfigDict(frozen=True)

    registry: str = DEFAULT_REGISTRY
    image_repository: str
    image_tag: str = DEFAULT_TAG
    source_ref: str = "."
    container_name: str = ""
    environments: list[EnvironmentConfig] = []

    checks: list[CheckCommand] = Field(default_factory=lambda: list(DEFAULT_CHECKS))
    best_effort_checks: bool = False

    trigger_branches: frozenset[str] = frozenset({"main", "develop"})
    release_branches: frozenset[str] = frozenset({"main"})
    release_environments: frozenset[EnvironmentLabel] = frozenset(
        {EnvironmentLabel.PRODUCTION}
    )

    registry_username: str = ""
    registry_credential_ref: str = "REGISTRY_TOKEN"

    prune_after_deploy: bool = True
    prepare_host: bool = False
    install_runtime: bool = False

    @model_validator(mode="after")
    def _unique_environments(self) -> PipelineConfig:
        labels = [env.label for env in self.environments]
        duplicates = {label.value for label in labels if labels.count(label) > 1}
        if duplicates:
            raise ValueError(
                f"environment labels must be unique, duplicated: {sorted(duplicates)}"
            )
        return self

    @model_validator(mode="after")
    def _valid_artifact(self) -> PipelineConfig:
        try:
            self.artifact  # builds and validates the image reference
        except ValidationError as exc:
            errors = "; ".join(err["msg"] for err in exc.errors())
            raise ValueError(f"invalid image reference: {errors}") from exc
        return self

    @property
    def artifact(self) -> ArtifactReference:
        return ArtifactReference(
            registry=self.registry,
            repository=self.image_repository,
            tag=self.image_tag,
        )

    @property
    def effective_container_name(self) -> str:
        """Configured container name, else the last repository path segment."""
        if self.container_name:
            return self.container_name
        return self.image_repository.rsplit("/", 1)[-1]

    def environment(self, label: EnvironmentLabel) -> EnvironmentConfig | None:
        for env in self.environments:
            if env.label == label:
                return env
        return None
