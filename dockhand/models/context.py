"""Trigger context: what caused a pipeline run."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

from dockhand.models.hosts import EnvironmentLabel

_BRANCH_REF_PREFIX = "refs/heads/"


class EventKind(str, Enum):
    """The kind of event that triggered a run."""

    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"


class TriggerContext(BaseModel):
    """Inputs every stage gate is evaluated against.

    ``artifact_tag`` is derived context: it is empty when the run starts and
    is filled in by the orchestrator once a build stage has produced an
    artifact.
    """

    model_config = ConfigDict(frozen=True)

    branch: str
    event_kind: EventKind
    requested_environment: EnvironmentLabel | None = None
    run_number: int = 0
    commit_message: str = ""
    artifact_tag: str | None = None

    @field_validator("branch")
    @classmethod
    def _strip_ref_prefix(cls, value: str) -> str:
        value = value.strip()
        if value.startswith(_BRANCH_REF_PREFIX):
            value = value[len(_BRANCH_REF_PREFIX):]
        return value

    @property
    def is_manual(self) -> bool:
        return self.event_kind == EventKind.MANUAL
