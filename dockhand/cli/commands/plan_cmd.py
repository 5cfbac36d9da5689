"""``dockhand plan``: show which stages a trigger would run.

Builds the canonical plan from the pipeline config and evaluates every
gate against the given trigger. Nothing is executed and no host is
contacted; credentials are not required.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.text import Text

from dockhand.cli.commands.common import EXIT_SETUP_ERROR, load_config, trigger_context
from dockhand.core.collaborators import DryRunCredentialProvider
from dockhand.core.errors import DockhandError
from dockhand.core.plan import build_plan
from dockhand.models.context import EventKind
from dockhand.models.hosts import EnvironmentLabel
from dockhand.monitor.renderer import RunRenderer

console = Console()


def plan_cmd(
    branch: str = typer.Option(
        ...,
        "--branch",
        "-b",
        help="Branch that triggered the run (refs/heads/ prefix accepted).",
    ),
    event: EventKind = typer.Option(
        EventKind.PUSH, "--event", case_sensitive=False, help="Trigger event kind."
    ),
    environment: Optional[EnvironmentLabel] = typer.Option(
        None,
        "--environment",
        "-e",
        case_sensitive=False,
        help="Target environment for a manual dispatch.",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Pipeline TOML file (defaults to DOCKHAND_CONFIG_PATH or dockhand.toml).",
    ),
) -> None:
    """Print the stage plan and the stages eligible for the trigger."""
    try:
        config = load_config(config_path)
        context = trigger_context(branch, event, environment)
        plan = build_plan(config, DryRunCredentialProvider())
        RunRenderer(console=console).print_plan(plan, context)
    except DockhandError as exc:
        console.print(Text.assemble(("Cannot plan: ", "bold red"), str(exc)))
        raise typer.Exit(code=EXIT_SETUP_ERROR)
