"""Dockhand data models: all Pydantic v2, all frozen (immutable)."""

from dockhand.models.artifacts import ArtifactReference
from dockhand.models.commands import CommandResult, RemoteCommand
from dockhand.models.config import CheckCommand, EnvironmentConfig, PipelineConfig
from dockhand.models.context import EventKind, TriggerContext
from dockhand.models.hosts import CredentialHandle, EnvironmentLabel, TargetHost
from dockhand.models.outcomes import (
    TERMINAL_STATES,
    VALID_RUN_TRANSITIONS,
    DeploymentOutcome,
    OutcomeStatus,
    RunState,
    RunSummary,
)
from dockhand.models.reports import CheckReport, ReleaseNotice

__all__ = [
    # artifacts
    "ArtifactReference",
    # hosts
    "CredentialHandle",
    "EnvironmentLabel",
    "TargetHost",
    # context
    "EventKind",
    "TriggerContext",
    # commands
    "RemoteCommand",
    "CommandResult",
    # outcomes
    "RunState",
    "OutcomeStatus",
    "DeploymentOutcome",
    "RunSummary",
    "VALID_RUN_TRANSITIONS",
    "TERMINAL_STATES",
    # reports
    "CheckReport",
    "ReleaseNotice",
    # config
    "CheckCommand",
    "EnvironmentConfig",
    "PipelineConfig",
]
