"""Collaborator result models: check reports and release notices."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from dockhand.models.artifacts import ArtifactReference
from dockhand.models.hosts import TargetHost


class CheckReport(BaseModel):
    """Output of the test/scan collaborator for one artifact."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    findings: tuple[str, ...] = ()


class ReleaseNotice(BaseModel):
    """Payload handed to the release notifier after a completed run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    artifact: ArtifactReference
    host: TargetHost
    tag_name: str
    commit_message: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
