"""Helpers shared by the ``plan`` and ``deploy`` commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from dockhand.config import load_pipeline_config, settings
from dockhand.core.errors import GateEvaluationError
from dockhand.core.gates import validate_trigger_context
from dockhand.models.config import PipelineConfig
from dockhand.models.context import EventKind, TriggerContext
from dockhand.models.hosts import EnvironmentLabel

# Exit status for configuration, credential and trigger errors (nothing ran).
EXIT_SETUP_ERROR = 3


def load_config(config_path: Optional[Path]) -> PipelineConfig:
    return load_pipeline_config(config_path or settings.config_path)


def trigger_context(
    branch: str,
    event: EventKind,
    environment: Optional[EnvironmentLabel],
    run_number: int = 0,
    commit_message: str = "",
) -> TriggerContext:
    """Build and validate the trigger context from CLI options.

    Raises
    ------
    GateEvaluationError
        If the options do not describe a usable trigger.
    """
    try:
        context = TriggerContext(
            branch=branch,
            event_kind=event,
            requested_environment=environment,
            run_number=run_number,
            commit_message=commit_message,
        )
    except ValidationError as exc:
        raise GateEvaluationError(f"Invalid trigger: {exc}") from exc
    validate_trigger_context(context)
    return context
