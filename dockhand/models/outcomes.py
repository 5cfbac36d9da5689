"""Run state machine and per-stage outcome models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from dockhand.models.artifacts import ArtifactReference


class RunState(str, Enum):
    """Lifecycle of one orchestrator run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


# Terminal states (COMPLETED, FAILED, ABORTED) have no outgoing transitions.
VALID_RUN_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.RUNNING},
    RunState.RUNNING: {RunState.COMPLETED, RunState.FAILED, RunState.ABORTED},
    RunState.COMPLETED: set(),
    RunState.FAILED: set(),
    RunState.ABORTED: set(),
}

TERMINAL_STATES: frozenset[RunState] = frozenset(
    {RunState.COMPLETED, RunState.FAILED, RunState.ABORTED}
)


class OutcomeStatus(str, Enum):
    """Result of a single stage."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeploymentOutcome(BaseModel):
    """One entry in a run's outcome log."""

    model_config = ConfigDict(frozen=True)

    stage_name: str
    status: OutcomeStatus
    duration_ms: float = 0.0
    diagnostics: tuple[str, ...] = ()


class RunSummary(BaseModel):
    """What ``DeploymentOrchestrator.start()`` hands back to the caller."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    state: RunState
    outcomes: tuple[DeploymentOutcome, ...] = ()
    artifact: ArtifactReference | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def stage_names(self) -> list[str]:
        return [o.stage_name for o in self.outcomes]

    @property
    def failed_outcome(self) -> DeploymentOutcome | None:
        for outcome in self.outcomes:
            if outcome.status == OutcomeStatus.FAILED:
                return outcome
        return None

    @property
    def duration_ms(self) -> float:
        return sum(o.duration_ms for o in self.outcomes)
