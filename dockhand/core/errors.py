"""Error taxonomy for the deployment core.

Every error raised by Dockhand derives from ``DockhandError``. Stage-level
errors are captured into the run's outcome log by the orchestrator; only
errors raised outside stage execution reach the caller of ``start()``.
Messages never include credential material.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dockhand.models.commands import CommandResult


class DockhandError(RuntimeError):
    """Base class for all Dockhand errors."""


class RemoteConnectionError(DockhandError, ConnectionError):
    """The target host is unreachable or rejected authentication.

    Fatal to the run. The core never retries.
    """


class CommandError(DockhandError):
    """A non best-effort command exited non-zero or timed out."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class GateEvaluationError(DockhandError):
    """The trigger context is malformed or a gate could not be evaluated."""


class DeployError(DockhandError):
    """A deployment precondition was violated (port conflict, ordering)."""


class PlanError(DockhandError):
    """The plan is malformed or cannot be executed with the given collaborators."""


class InvalidTransitionError(DockhandError):
    """Raised when a requested run state transition is not valid."""


class ConfigError(DockhandError):
    """The pipeline configuration could not be loaded or validated."""


class ChecksFailedError(DockhandError):
    """The test/scan collaborator reported failure for a required check stage."""


class PublishError(DockhandError):
    """The registry push collaborator reported failure."""
